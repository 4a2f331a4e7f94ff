from __future__ import annotations


class AssessmentEngineError(Exception):
    pass


class NormalizationError(AssessmentEngineError):
    """A single malformed row or block.

    Collected into the NormalizationResult rather than raised, unless the
    caller asked for strict normalization.
    """

    def __init__(self, reason: str, *, index: int | None = None) -> None:
        self.reason = reason
        self.index = index
        where = f"entry {index}: " if index is not None else ""
        super().__init__(f"{where}{reason}")


class AccessDeniedError(AssessmentEngineError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class NotAvailableError(AssessmentEngineError):
    pass


class InvalidStateError(AssessmentEngineError):
    pass


class UnknownQuestionError(AssessmentEngineError):
    pass


class AssessmentNotFoundError(AssessmentEngineError):
    pass


class AttemptNotFoundError(AssessmentEngineError):
    pass


class AuthoringError(ValueError, AssessmentEngineError):
    pass
