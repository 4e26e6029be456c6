"""Exceptions raised at the service boundary."""


class InvariantViolation(ValueError):
    """An operation would break a step-tree rule, e.g. toggling a parent that has children."""


class RecordNotFound(KeyError):
    """The store has no record with the requested id."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection}/{record_id}")
        self.collection = collection
        self.record_id = record_id

    def __str__(self) -> str:
        return f"No {self.collection} record with id {self.record_id}"
