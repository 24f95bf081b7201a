class EngineError(Exception):
    """Base class for every error the practice engine raises."""

    code = "engine_error"

    def __init__(self, message: str = "", *, details: dict | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}


class ValidationError(EngineError):
    """Bad preconditions: missing scenario/personality, blank utterance. Never retried."""

    code = "validation_error"


class InvalidStateError(EngineError):
    """Operation on an absent or terminal session, or an illegal gate transition."""

    code = "invalid_state"


class SessionAlreadyActiveError(ValidationError, InvalidStateError):
    code = "session_already_active"


class BusyError(EngineError):
    """A turn is already in flight for this session."""

    code = "busy"


class ProviderError(EngineError):
    """A collaborator call failed. Recoverable; nothing was applied to the session."""

    code = "provider_error"


class CollaboratorTimeout(ProviderError):
    code = "timeout"


class CompletionFailure(ProviderError):
    code = "completion_failure"


class EvaluationFailure(ProviderError):
    code = "evaluation_failure"
