"""Error taxonomy shared by the domain layer, the use cases and the API.

Every error carries the HTTP status the API answers with, so routes never
have to translate domain failures one by one.
"""


class LibraryError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError):
    """A field is missing, malformed or out of range."""

    status_code = 422


class NotFoundError(LibraryError):
    status_code = 404

    @classmethod
    def for_entity(cls, entity: str, entity_id: str) -> "NotFoundError":
        return cls(f"{entity} not found: {entity_id}")


class ConflictError(LibraryError):
    """A business rule blocks the operation."""

    status_code = 409


class OutOfStockError(ConflictError):
    pass


class ConcurrencyError(ConflictError):
    pass


class InvalidStateError(LibraryError):
    """The operation is not allowed from the current state."""

    status_code = 409


class OverReturnError(InvalidStateError):
    pass


class OverdueError(InvalidStateError):
    pass


class LimitExceededError(LibraryError):
    status_code = 409
