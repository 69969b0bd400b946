"""
Rule data models for the rules engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import ConditionError, ErrorResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..almanac.almanac import Almanac


class Condition(BaseModel):
    """Compare one fact value (optionally a path inside it) with a constant."""
    model_config = ConfigDict(extra="forbid")

    fact: str = Field(..., min_length=1, description="Fact ID")
    operator: str = Field(..., min_length=1, description="Operator name")
    value: Any = Field(None, description="Value to compare against")
    path: Optional[str] = Field(None, description="Path inside the fact value, e.g. $.account.type")
    params: Dict[str, Any] = Field(default_factory=dict, description="Parameters passed to the fact")


class ConditionGroup(BaseModel):
    """Boolean combination of conditions and nested groups."""
    model_config = ConfigDict(extra="forbid")

    boolean_operator: Literal["all", "any"] = Field("all", description="all = AND, any = OR")
    conditions: List[Union[Condition, "ConditionGroup"]] = Field(default_factory=list)


ConditionGroup.model_rebuild()


class Event(BaseModel):
    """Event emitted when a rule matches."""
    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., min_length=1, description="Event type")
    params: Dict[str, Any] = Field(default_factory=dict, description="Event parameters")


class Rule(BaseModel):
    """A prioritized condition tree and the event it triggers."""
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Rule ID")
    conditions: ConditionGroup
    event: Event
    priority: int = Field(1, description="Lower values are evaluated first")
    name: Optional[str] = Field(None, description="Human readable name")

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "Rule":
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            raise ConditionError(
                "Invalid rule definition",
                {"error_count": exc.error_count(), "errors": [e["msg"] for e in exc.errors()]}
            ) from exc


@dataclass
class RuleResult:
    """Result of evaluating one rule."""
    rule: Rule
    result: bool
    event: Optional[Event] = None
    error: Optional[ErrorResponse] = None


@dataclass
class EngineResult:
    """Result of one engine run."""
    events: List[Event] = field(default_factory=list)
    failure_events: List[Event] = field(default_factory=list)
    almanac: Optional["Almanac"] = None
    results: List[RuleResult] = field(default_factory=list)
    failure_results: List[RuleResult] = field(default_factory=list)
    run_id: Optional[str] = None
    evaluation_time_ms: float = 0.0
