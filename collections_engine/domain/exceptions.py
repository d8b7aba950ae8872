"""Domain-specific exceptions"""

from typing import Any, List


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidDomainValueError(DomainException, ValueError):
    """Argument is outside its closed domain (unknown enum name, malformed date or amount)"""

    def __init__(self, field: str, value: Any, message: str | None = None):
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid value for {field}: {value!r}")


class RuleSetIntegrityError(DomainException):
    """Static rule tables violate one or more structural invariants"""

    def __init__(self, violations: List[str]):
        self.violations = violations
        super().__init__("Rule set integrity check failed: " + "; ".join(violations))
