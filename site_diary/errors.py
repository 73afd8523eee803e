import logging
from typing import Any, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class DiaryError(Exception):
    """Base class for every error raised by the site diary core."""


class ValidationError(DiaryError):
    """Input was rejected. Fix the input and retry the same step."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ChecklistIncompleteError(ValidationError):
    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = list(missing)
        super().__init__("checklist", "incomplete items: " + ", ".join(self.missing))


class ConfirmationRequiredError(ValidationError):
    def __init__(self):
        super().__init__("confirmed", "the record must be confirmed as accurate before submission")


class StateError(DiaryError):
    """Operation attempted outside the lifecycle state that allows it."""

    def __init__(self, operation: str, state: Any, allowed: Optional[Iterable[Any]] = None):
        self.operation = operation
        self.state = state
        self.allowed = list(allowed or [])
        msg = f"{operation} is not allowed while the shift is {getattr(state, 'value', state)}"
        if self.allowed:
            msg += " (allowed: " + ", ".join(str(getattr(a, "value", a)) for a in self.allowed) + ")"
        super().__init__(msg)


class StoreError(DiaryError):
    """The external store call failed. `params` holds the original request so it can be retried."""

    def __init__(self, operation: str, params: Tuple[Any, ...]):
        self.operation = operation
        self.params = params
        super().__init__(f"store call {operation} failed")


class ShiftNotFoundError(DiaryError):
    """No shift identified, or the identified shift no longer exists. Restart from setup."""

    def __init__(self, shift_id: Optional[str]):
        self.shift_id = shift_id
        super().__init__(f"shift not found: {shift_id!r}" if shift_id else "no shift identified")


def store_call(store: Any, operation: str, *args: Any) -> Any:
    try:
        return getattr(store, operation)(*args)
    except DiaryError:
        raise
    except Exception as e:
        logger.warning("store call %s%r failed: %s", operation, args, e)
        raise StoreError(operation, args) from e
