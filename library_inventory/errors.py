class InventoryError(Exception):
    """Base class for failures raised by the inventory repository."""


class StoreError(InventoryError):
    """The underlying store call failed (connection, constraint, timeout)."""


class NotFoundError(InventoryError):
    def __init__(self, entity: str, key):
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class InvalidStateError(InventoryError):
    pass
