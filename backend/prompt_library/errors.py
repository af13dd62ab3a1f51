"""Error taxonomy shared by the validation layer, the lifecycle engine and the store.

Each error carries the HTTP status the transport layer answers with.
The handlers in main.py turn them into ``{"detail": message}`` responses.
"""


class PromptLibraryError(Exception):
    """Base for all errors raised by the prompt library core."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(PromptLibraryError):
    """Input failed its schema. Message names the first failing field."""
    status_code = 400


class UnauthorizedError(PromptLibraryError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(PromptLibraryError):
    status_code = 404


class ConflictError(PromptLibraryError):
    """Optimistic-concurrency loss: someone else moved the version pointer first."""
    status_code = 409


class InvalidStateError(PromptLibraryError):
    """Stored data violates an invariant the operation depends on."""
    status_code = 409


class StoreError(PromptLibraryError):
    """Persistence failure. The message is generic; details go to the log."""
    status_code = 500

    def __init__(self, message: str = "Internal storage error"):
        super().__init__(message)


class ConfigurationError(PromptLibraryError):
    """A required setting (secret, connection string) is missing."""
    status_code = 500
