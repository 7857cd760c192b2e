"""Exceptions raised while compiling or evaluating dice expressions."""

from __future__ import annotations


class ExpressionError(ValueError):
    """Raised when dice-notation text cannot be compiled or evaluated."""

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(message)
        self.expression = expression


class UnboundVariableError(ExpressionError):
    """Raised when an expression references a variable with no resolved value."""

    def __init__(self, name: str, expression: str | None = None) -> None:
        super().__init__(f"Variable '{name}' is not defined before use", expression)
        self.name = name


class ComputationError(RuntimeError):
    """Raised on the caller side when a computation thread reports a failed request."""

    def __init__(self, message: str, nonce: int | None = None) -> None:
        super().__init__(message)
        self.nonce = nonce
