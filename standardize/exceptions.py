"""Exceptions raised while standardizing a model or replaying it."""
from typing import Iterable, Optional


class StandardizeError(ValueError):
    """Base class for every fatal standardization error."""
    pass


class FormulaError(StandardizeError):
    """Raised when a formula is malformed or uses unsupported syntax."""
    pass


class DegenerateFactorError(StandardizeError):
    """Raised when a factor or grouping factor has fewer than two levels."""
    pass


class ZeroVarianceError(StandardizeError):
    """Raised when a standard deviation is zero or undefined."""
    pass


class NonNumericError(StandardizeError):
    """Raised when a numeric transform is applied to unsuitable values."""
    pass


class MissingVariableError(StandardizeError):
    """Raised when a variable named by the formula is absent from the table."""
    def __init__(self, variables: Iterable[str]) -> None:
        self.variables = sorted(set(variables))
        super().__init__(f"Variables not found in data: {self.variables}")


class UnseenLevelError(StandardizeError):
    """Raised at prediction time for a factor level absent at fit time."""
    def __init__(
        self,
        variable: str,
        unseen: Iterable[str],
        allowed: Optional[Iterable[str]] = None
    ) -> None:
        self.variable = variable
        self.unseen = sorted(set(unseen))
        self.allowed = list(allowed) if allowed is not None else []
        super().__init__(
            f"'{variable}' has values not seen when the model was standardized: "
            f"{self.unseen}. Allowed: {self.allowed}"
        )


class UnseenGroupError(UnseenLevelError):
    """Raised at prediction time for a group key absent at fit time."""
    pass


class ConfigError(Exception):
    """Raised when configuration loading or parsing fails."""
    pass
