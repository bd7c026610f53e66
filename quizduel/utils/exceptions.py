"""Domain exceptions for the challenge engine."""


class ChallengeError(RuntimeError):
    """Base class for challenge errors carrying a machine-readable code."""

    code = "challenge_error"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


# Validation errors - rejected before any orchestration
class InvalidChallengeIdError(ChallengeError):
    code = "invalid_challenge_id"


class ChallengeNotFoundError(ChallengeError):
    code = "challenge_not_found"


class NotParticipantError(ChallengeError):
    code = "not_authorized"


class ChallengeCompletedError(ChallengeError):
    code = "challenge_already_completed"


class ChallengeExpiredError(ChallengeError):
    code = "challenge_expired"


class TimeLimitExceededError(ChallengeError):
    code = "time_limit_exceeded"


class AlreadySubmittedError(ChallengeError):
    code = "already_submitted"


class SubmissionValidationError(ChallengeError):
    code = "invalid_submission"


class ChallengeCreationError(ChallengeError):
    code = "invalid_challenge"


class ResultNotReadyError(ChallengeError):
    """Raised by read endpoints when a challenge has no result yet."""
    code = "challenge_not_completed"


# Precondition errors - retryable, no error state recorded
class EvaluationNotReadyError(ChallengeError):
    code = "evaluation_not_ready"


# Refusal - the challenge is in a terminal state that cannot be evaluated
class ChallengeNotEvaluableError(ChallengeError):
    code = "challenge_not_evaluable"


# Race loss - another evaluation already persisted the result
class ResultAlreadyExistsError(ChallengeError):
    code = "result_already_exists"
