"""Error taxonomy for the scheduling engine.

These do not subclass ``ValueError`` so that raising one from inside a
pydantic validator surfaces the scheduling error itself.
"""


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed input or a request outside any configured availability."""


class ConflictError(SchedulingError):
    """The requested time is already busy or blocked."""

    def __init__(self, message: str, status: str | None = None, occupant_ref: int | None = None):
        super().__init__(message)
        self.status = status
        self.occupant_ref = occupant_ref


class InvalidTransitionError(SchedulingError):
    """An appointment status change outside the allowed state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f'Cannot change appointment status from {current} to {target}.')
        self.current = current
        self.target = target
