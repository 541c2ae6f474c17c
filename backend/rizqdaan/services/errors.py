from __future__ import annotations


class ValidationError(ValueError):
    """Input rejected before any write was attempted."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class TransitionError(ValueError):
    def __init__(self, current: str, target: str, message: str = ""):
        super().__init__(message or f"invalid_transition {current}->{target}")
        self.code = "INVALID_TRANSITION"
        self.current = current
        self.target = target
        self.message = str(self)


class NotFoundError(LookupError):
    def __init__(self, what: str, ident=None):
        super().__init__(f"{what} not found" if ident is None else f"{what} {ident} not found")
        self.code = "NOT_FOUND"
        self.message = str(self)
