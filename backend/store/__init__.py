from .client import StoreClient, StoreError, normalize_id, same_id

__all__ = ["StoreClient", "StoreError", "normalize_id", "same_id"]
