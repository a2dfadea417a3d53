"""
Tests for the SpecWriter boundary.

Covers parsing of declarative trees, writing specs onto pools, reading
pools back, the original-target metadata and change classification.
"""

import pytest

from poolshift.exceptions import (
    BlankGenerationError,
    ResourceQuantityError,
    SpecValidationError,
)
from poolshift.models.pool import Pool
from poolshift.spec_writer import (
    GENERATION_LABEL,
    ORIGINAL_TARGET_ANNOTATION,
    OWNED_ANNOTATION,
    TEMPLATE_HASH_ANNOTATION,
    SpecWriter,
    template_fingerprint,
)

from tests.fakes import make_tree


class TestParse:
    """Declarative tree validation."""

    def test_minimal_tree(self, spec_writer):
        spec = spec_writer.parse(make_tree())

        assert spec.name == "web"
        assert spec.replicas == 3
        assert spec.template.containers[0].image == "nginx:1.25"
        assert spec.template.containers[0].ports[0].container_port == 80

    def test_default_namespace_applied(self):
        tree = make_tree()
        del tree["namespace"]

        spec = SpecWriter(default_namespace="apps").parse(tree)

        assert spec.namespace == "apps"

    def test_missing_template(self, spec_writer):
        tree = make_tree()
        del tree["template"]

        with pytest.raises(SpecValidationError) as exc_info:
            spec_writer.parse(tree)

        assert exc_info.value.context["field"] == "template"

    def test_unknown_key_rejected(self, spec_writer):
        tree = make_tree()
        tree["template"]["container"][0]["imagee"] = "typo"

        with pytest.raises(SpecValidationError, match="imagee"):
            spec_writer.parse(tree)

    def test_bad_quantity(self, spec_writer):
        tree = make_tree()
        tree["template"]["container"][0]["resources"] = {"limits": {"cpu": "lots"}}

        with pytest.raises(ResourceQuantityError) as exc_info:
            spec_writer.parse(tree)

        assert exc_info.value.context["quantity"] == "lots"

    def test_reserved_generation_label(self, spec_writer):
        tree = make_tree()
        tree["template"]["labels"][GENERATION_LABEL] = "mine"

        with pytest.raises(SpecValidationError, match="reserved"):
            spec_writer.parse(tree)

    def test_negative_replicas(self, spec_writer):
        with pytest.raises(SpecValidationError):
            spec_writer.parse(make_tree(replicas=-1))

    def test_non_mapping(self, spec_writer):
        with pytest.raises(SpecValidationError):
            spec_writer.parse(["not", "a", "mapping"])


class TestWritePool:
    """Stamping a spec onto a pool object."""

    def test_writes_metadata_template_and_selector(self, spec_writer, make_spec):
        spec = make_spec(annotations={"owner": "ops"})
        pool = spec_writer.write_pool(Pool(name="web"), spec, "gen-1", target=3)

        assert pool.replicas == 3
        assert pool.labels == {"team": "platform"}
        assert pool.annotations[OWNED_ANNOTATION] == "true"
        assert pool.annotations[ORIGINAL_TARGET_ANNOTATION] == "3"
        assert pool.annotations[TEMPLATE_HASH_ANNOTATION] == template_fingerprint(
            spec.template
        )
        assert pool.annotations["owner"] == "ops"
        assert pool.template.labels == {"app": "web", GENERATION_LABEL: "gen-1"}
        assert pool.selector == pool.template.labels
        assert pool.generation_id == "gen-1"

    def test_replicas_override_keeps_original_target(self, spec_writer, make_spec):
        pool = spec_writer.write_pool(
            Pool(name="web-gen-1"), make_spec(), "gen-1", target=3, replicas=0
        )

        assert pool.replicas == 0
        assert pool.annotations[ORIGINAL_TARGET_ANNOTATION] == "3"

    def test_spec_template_is_not_mutated(self, spec_writer, make_spec):
        spec = make_spec()
        spec_writer.write_pool(Pool(name="web"), spec, "gen-1", target=3)

        assert GENERATION_LABEL not in spec.template.labels

    def test_blank_generation_rejected(self, spec_writer, make_spec):
        with pytest.raises(BlankGenerationError):
            spec_writer.write_pool(Pool(name="web"), make_spec(), "", target=3)


class TestReadPool:
    """Reading a pool back hides bookkeeping."""

    def test_strips_reserved_metadata(self, spec_writer, make_spec):
        spec = make_spec(annotations={"owner": "ops"})
        pool = spec_writer.write_pool(Pool(name="web"), spec, "gen-1", target=3)

        tree = spec_writer.read_pool(pool)

        assert tree["annotations"] == {"owner": "ops"}
        assert tree["template"]["labels"] == {"app": "web"}
        assert tree["replicas"] == 3
        assert tree["template"]["container"][0]["image"] == "nginx:1.25"

    def test_read_tree_parses_back_to_same_template(self, spec_writer, make_spec):
        spec = make_spec()
        pool = spec_writer.write_pool(Pool(name="web"), spec, "gen-1", target=3)

        reparsed = spec_writer.parse(spec_writer.read_pool(pool))

        assert reparsed.template == spec.template


class TestOriginalTarget:
    """Read-then-clear of the recorded original target."""

    def test_pop_removes_annotation(self, spec_writer):
        pool = Pool(name="web", annotations={ORIGINAL_TARGET_ANNOTATION: "4"})

        assert spec_writer.pop_original_target(pool) == 4
        assert ORIGINAL_TARGET_ANNOTATION not in pool.annotations

    def test_absent(self, spec_writer):
        assert spec_writer.pop_original_target(Pool(name="web")) is None

    @pytest.mark.parametrize("raw", ["three", "-1", ""])
    def test_corrupt_value(self, spec_writer, raw):
        pool = Pool(name="web", annotations={ORIGINAL_TARGET_ANNOTATION: raw})

        with pytest.raises(SpecValidationError):
            spec_writer.pop_original_target(pool)


class TestTemplateChanged:
    """Classification of in-place versus migration."""

    def test_same_template(self, spec_writer, make_spec):
        pool = spec_writer.write_pool(Pool(name="web"), make_spec(), "gen-1", target=3)

        assert spec_writer.template_changed(pool, make_spec(replicas=7)) is False

    def test_image_change(self, spec_writer, make_spec):
        pool = spec_writer.write_pool(Pool(name="web"), make_spec(), "gen-1", target=3)

        assert spec_writer.template_changed(pool, make_spec(image="nginx:2")) is True

    def test_pool_without_generation_label(self, spec_writer, make_spec):
        spec = make_spec()
        pool = Pool(name="web", template=spec.template)

        assert spec_writer.template_changed(pool, spec) is True

    def test_falls_back_to_live_template_without_hash(self, spec_writer, make_spec):
        pool = spec_writer.write_pool(Pool(name="web"), make_spec(), "gen-1", target=3)
        del pool.annotations[TEMPLATE_HASH_ANNOTATION]

        assert spec_writer.template_changed(pool, make_spec()) is False
        assert spec_writer.template_changed(pool, make_spec(image="nginx:2")) is True

    def test_fingerprint_ignores_generation(self, make_spec):
        template = make_spec().template

        assert template_fingerprint(template) == template_fingerprint(
            template.with_generation("gen-9")
        )
