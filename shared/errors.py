"""
Shared error handling for the rules engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import get_run_id


class ErrorResponse(BaseModel):
    """Standard error payload attached to failed rule results."""

    run_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorResponse":
        """Build a response for any exception, including compute failures."""
        if isinstance(exc, RulesEngineException):
            return exc.to_response()

        return cls(
            run_id=get_run_id(),
            code="COMPUTE_FAILURE",
            message=str(exc) or exc.__class__.__name__,
            details={"exception_type": exc.__class__.__name__}
        )


class RulesEngineException(Exception):
    """Base exception for the rules engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            run_id=get_run_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class UndefinedFactError(RulesEngineException):
    """Fact id is neither a runtime fact nor a registered definition."""

    def __init__(self, fact_id: str, details: Optional[Dict[str, Any]] = None):
        self.fact_id = fact_id
        super().__init__(
            "UNDEFINED_FACT",
            f"Fact '{fact_id}' not found in almanac",
            {"fact_id": fact_id, **(details or {})}
        )


class ArgumentError(RulesEngineException):
    """Invalid construction or registration input."""

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("ARGUMENT_ERROR", message, details)


class UnknownOperatorError(RulesEngineException):
    """Condition references an operator that is not registered."""

    def __init__(self, operator: str, details: Optional[Dict[str, Any]] = None):
        self.operator = operator
        super().__init__(
            "UNKNOWN_OPERATOR",
            f"Operator '{operator}' not found in registry",
            {"operator": operator, **(details or {})}
        )


class RuleNotFoundError(RulesEngineException):
    """Rule id is not known to the engine."""

    def __init__(self, rule_id: str, details: Optional[Dict[str, Any]] = None):
        self.rule_id = rule_id
        super().__init__(
            "RULE_NOT_FOUND",
            f"Rule '{rule_id}' not found in engine",
            {"rule_id": rule_id, **(details or {})}
        )


class EngineRunningError(RulesEngineException):
    """A run was requested while another run is in progress."""

    def __init__(self, message: str = "Engine is already running", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENGINE_RUNNING", message, details)


class ConditionError(RulesEngineException):
    """Malformed rule or condition definition."""

    def __init__(self, message: str = "Invalid condition", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONDITION_ERROR", message, details)


class CircularFactError(RulesEngineException):
    """A fact computation asked for its own value with the same parameters."""

    def __init__(self, fact_id: str, chain: Optional[list] = None, details: Optional[Dict[str, Any]] = None):
        self.fact_id = fact_id
        self.chain = chain or []
        super().__init__(
            "CIRCULAR_FACT",
            f"Fact '{fact_id}' depends on itself",
            {"fact_id": fact_id, "chain": self.chain, **(details or {})}
        )
