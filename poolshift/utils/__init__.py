from .identity import join_id, split_id

__all__ = ["join_id", "split_id"]
