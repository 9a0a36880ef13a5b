from .errors import InvalidStateError, InventoryError, NotFoundError, StoreError
from .repository import FailurePolicy, InventoryRepository

__all__ = [
    "FailurePolicy",
    "InvalidStateError",
    "InventoryError",
    "InventoryRepository",
    "NotFoundError",
    "StoreError",
]
