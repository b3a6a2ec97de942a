"""Domain errors raised by the progress service.

Each error is an ``HTTPException`` so routers can let it propagate as-is;
``code`` is a stable machine-readable identifier rendered next to ``detail``.
"""

from fastapi import HTTPException, status


class ProgressServiceError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "progress_error"

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)


class InvalidTransition(ProgressServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class AlreadyApproved(InvalidTransition):
    code = "already_approved"


class ItemNotAssigned(ProgressServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "item_not_assigned"


class NotAuthorized(ProgressServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_authorized"


class NotFound(ProgressServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class LedgerInconsistency(ProgressServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "ledger_inconsistency"


class InvalidAnswer(ProgressServiceError):
    status_code = 422
    code = "invalid_answer"


class SubmissionWindowClosed(ProgressServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "submission_window_closed"
