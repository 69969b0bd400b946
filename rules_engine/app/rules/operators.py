"""
Comparison operators for rule conditions.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from shared.errors import ArgumentError, UnknownOperatorError
from shared.logging import get_logger


@dataclass(frozen=True)
class Operator:
    """A named predicate comparing a fact value with a condition value."""
    name: str
    evaluate: Callable[[Any, Any], bool]

    def __call__(self, fact_value: Any, compare_to: Any) -> bool:
        return self.evaluate(fact_value, compare_to)


def _is_collection(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes))


def _compare(check: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Wrap an ordering check so None and incomparable values evaluate to False."""

    def evaluate(fact_value: Any, compare_to: Any) -> bool:
        if fact_value is None or compare_to is None:
            return False
        try:
            return bool(check(fact_value, compare_to))
        except TypeError:
            return False

    return evaluate


def _equal(fact_value: Any, compare_to: Any) -> bool:
    return fact_value == compare_to


def _not_equal(fact_value: Any, compare_to: Any) -> bool:
    return fact_value != compare_to


def _in(fact_value: Any, compare_to: Any) -> bool:
    if fact_value is None or not _is_collection(compare_to):
        return False
    return fact_value in compare_to


def _not_in(fact_value: Any, compare_to: Any) -> bool:
    if fact_value is None or not _is_collection(compare_to):
        return True
    return fact_value not in compare_to


def _contains(fact_value: Any, compare_to: Any) -> bool:
    if isinstance(fact_value, str):
        return isinstance(compare_to, str) and compare_to in fact_value
    if fact_value is None or compare_to is None or not _is_collection(fact_value):
        return False
    return compare_to in fact_value


def _does_not_contain(fact_value: Any, compare_to: Any) -> bool:
    if isinstance(fact_value, str):
        return not (isinstance(compare_to, str) and compare_to in fact_value)
    if fact_value is None or compare_to is None or not _is_collection(fact_value):
        return True
    return compare_to not in fact_value


def _starts_with(fact_value: Any, compare_to: Any) -> bool:
    if not isinstance(fact_value, str) or compare_to is None:
        return False
    return fact_value.startswith(str(compare_to))


def _ends_with(fact_value: Any, compare_to: Any) -> bool:
    if not isinstance(fact_value, str) or compare_to is None:
        return False
    return fact_value.endswith(str(compare_to))


DEFAULT_OPERATORS: List[Operator] = [
    Operator("equal", _equal),
    Operator("notEqual", _not_equal),
    Operator("greaterThan", _compare(lambda a, b: a > b)),
    Operator("greaterThanInclusive", _compare(lambda a, b: a >= b)),
    Operator("lessThan", _compare(lambda a, b: a < b)),
    Operator("lessThanInclusive", _compare(lambda a, b: a <= b)),
    Operator("in", _in),
    Operator("notIn", _not_in),
    Operator("contains", _contains),
    Operator("doesNotContain", _does_not_contain),
    Operator("startsWith", _starts_with),
    Operator("endsWith", _ends_with),
]


class OperatorRegistry:
    """Registry of condition operators, pre-loaded with the defaults."""

    def __init__(self, operators: Optional[Iterable[Operator]] = None):
        self.logger = get_logger("rules_engine.operators")
        self._operators: Dict[str, Operator] = {}
        for operator in DEFAULT_OPERATORS:
            self._operators[operator.name] = operator
        for operator in operators or []:
            self.add_operator(operator)

    def add_operator(self, operator: Operator) -> None:
        """Add or replace an operator."""
        if not isinstance(operator, Operator):
            raise ArgumentError("An Operator instance is required", {"received": type(operator).__name__})
        self._operators[operator.name] = operator
        self.logger.debug("Operator registered", operator=operator.name)

    def get_operator(self, name: str) -> Operator:
        if not name:
            raise ArgumentError("Operator name is required")
        operator = self._operators.get(name)
        if operator is None:
            raise UnknownOperatorError(name)
        return operator

    def names(self) -> List[str]:
        return sorted(self._operators)

    def __contains__(self, name: object) -> bool:
        return name in self._operators
