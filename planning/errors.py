# planning/errors.py


class PlanningError(ValueError):
    """
    Expected, user-facing failure of a planning operation.

    The dispatcher turns these into {"status": "error", "error": code, ...}.
    """
    code = "planning_error"

    def __init__(self, message: str = "", **details) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_response(self) -> dict:
        response = {
            "status": "error",
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response


class InvalidFormat(PlanningError):
    code = "invalid_format"


class NotFound(PlanningError):
    code = "not_found"


class NotFuture(PlanningError):
    code = "not_future"


class NoGoals(PlanningError):
    code = "no_goals"


class IncompleteConfirmation(PlanningError):
    code = "incomplete_confirmation"


class NotConfirmed(PlanningError):
    code = "not_confirmed"


class Forbidden(PlanningError):
    code = "forbidden"
