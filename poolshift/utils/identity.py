"""Pool identity strings of the form ``namespace/name``."""

from typing import Tuple


def join_id(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def split_id(identity: str) -> Tuple[str, str]:
    """
    Split a ``namespace/name`` identity.

    Raises:
        ValueError: If the identity does not have exactly two non-empty parts
    """
    parts = identity.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"invalid id: {identity!r} (expected 'namespace/name')")
    return parts[0], parts[1]
