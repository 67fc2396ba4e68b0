class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""


class SessionError(DomainError):
    """Base for work session failures. The message is shown to the user as is."""

    retryable = False


class AlreadyActive(SessionError):
    """A session for today is already running or on break."""


class InvalidTransition(SessionError):
    """The operation is not allowed from the session's current status."""


class NoActiveSession(InvalidTransition):
    """The operation needs a session in progress and there is none."""


class OperationInProgress(SessionError):
    """Another transition for the same user has not finished yet."""

    retryable = True


class StoreUnavailable(SessionError):
    """The document store failed or did not answer in time."""

    retryable = True


class ReconciliationFailed(SessionError):
    """The session completed but its attendance summary was not updated."""

    retryable = True


class DuplicateDocumentError(Exception):
    """Raised by a document store when a lock key is already held."""

    def __init__(self, collection: str, lock_key: str):
        super().__init__(f"{collection}: lock key {lock_key!r} is already held")
        self.collection = collection
        self.lock_key = lock_key
