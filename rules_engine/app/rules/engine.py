"""
Rule evaluation engine.
"""

import asyncio
import itertools
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union, TYPE_CHECKING

from shared.config import BaseConfig
from shared.errors import ArgumentError, EngineRunningError, ErrorResponse, RuleNotFoundError
from shared.logging import get_logger, run_context
from ..almanac.almanac import Almanac, AlmanacOptions
from ..almanac.fact import Fact
from .models import Condition, ConditionGroup, EngineResult, Event, Rule, RuleResult
from .operators import Operator, OperatorRegistry
from .path_resolver import JsonPathResolver, PathResolver

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


FACT_TEMPLATE = re.compile(r"^\{\{\s*([^{}\s]+)\s*\}\}$")
# "$.user" or "$.user.address.city": a fact id, then an optional path inside it
FACT_PATH = re.compile(r"^\$\.([A-Za-z_][\w-]*)((?:\.[\w-]+)*)$")


@dataclass
class EngineOptions:
    """Engine behaviour and the options of the almanacs it creates."""
    allow_undefined_facts: bool = False
    enable_fact_caching: bool = True
    cache_max_size: int = 0
    replace_facts_in_event_params: bool = True
    continue_on_error: bool = False
    max_concurrency: int = 1
    path_resolver: PathResolver = field(default_factory=JsonPathResolver)

    @classmethod
    def from_config(cls, config: BaseConfig) -> "EngineOptions":
        return cls(
            allow_undefined_facts=config.allow_undefined_facts,
            enable_fact_caching=config.enable_fact_caching,
            cache_max_size=config.cache_max_size,
            replace_facts_in_event_params=config.replace_facts_in_event_params,
            continue_on_error=config.continue_on_error,
            max_concurrency=config.max_concurrency,
        )

    def almanac_options(self) -> AlmanacOptions:
        return AlmanacOptions(
            allow_undefined_facts=self.allow_undefined_facts,
            enable_fact_caching=self.enable_fact_caching,
            cache_max_size=self.cache_max_size,
            path_resolver=self.path_resolver,
        )


class Engine:
    """Evaluates rules in priority order against an Almanac."""

    def __init__(
        self,
        rules: Optional[Iterable[Rule]] = None,
        options: Optional[EngineOptions] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.options = options or EngineOptions()
        if self.options.max_concurrency < 1:
            raise ArgumentError("max_concurrency must be at least 1",
                                {"max_concurrency": self.options.max_concurrency})

        self.logger = get_logger("rules_engine.engine")
        self.metrics = metrics
        self.operators = OperatorRegistry()
        self._rules: Dict[str, Rule] = {}
        self._facts: Dict[str, Fact] = {}
        self._running = False

        for rule in rules or []:
            self.add_rule(rule)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def rules(self) -> List[Rule]:
        """Rules in evaluation order."""
        return sorted(self._rules.values(), key=lambda r: r.priority)

    def add_rule(self, rule: Rule) -> None:
        """Add a rule; a rule with the same id is replaced."""
        if not isinstance(rule, Rule):
            raise ArgumentError("A Rule instance is required", {"received": type(rule).__name__})
        replaced = rule.id in self._rules
        self._rules[rule.id] = rule
        self.logger.info("Rule added", rule_id=rule.id, priority=rule.priority, replaced=replaced)

    def update_rule(self, rule: Rule) -> None:
        """Replace an existing rule."""
        if not isinstance(rule, Rule):
            raise ArgumentError("A Rule instance is required", {"received": type(rule).__name__})
        if rule.id not in self._rules:
            raise RuleNotFoundError(rule.id)
        self._rules[rule.id] = rule
        self.logger.info("Rule updated", rule_id=rule.id, priority=rule.priority)

    def remove_rule(self, rule: Union[Rule, str]) -> bool:
        """Remove a rule by instance or id."""
        if isinstance(rule, Rule):
            rule_id = rule.id
            if self._rules.get(rule_id) != rule:
                return False
        elif isinstance(rule, str) and rule:
            rule_id = rule
        else:
            raise ArgumentError("A Rule or a rule id is required", {"received": type(rule).__name__})

        if rule_id not in self._rules:
            return False
        del self._rules[rule_id]
        self.logger.info("Rule removed", rule_id=rule_id)
        return True

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def clear_all_rules(self) -> None:
        self._rules.clear()
        self.logger.info("All rules cleared")

    def add_fact(self, fact: Fact) -> None:
        """Register a fact definition for every almanac this engine creates."""
        if not isinstance(fact, Fact):
            raise ArgumentError("A Fact instance is required", {"received": type(fact).__name__})
        self._facts[fact.id] = fact
        self.logger.debug("Engine fact added", fact_id=fact.id)

    def remove_fact(self, fact_id: str) -> bool:
        return self._facts.pop(fact_id, None) is not None

    def add_operator(self, operator: Operator) -> None:
        self.operators.add_operator(operator)

    def create_almanac(self) -> Almanac:
        """Build a fresh almanac seeded with the engine's fact definitions."""
        return Almanac(self._facts.values(), self.options.almanac_options(), metrics=self.metrics)

    def stop(self) -> None:
        """Stop the current run before the next priority group."""
        if self._running:
            self.logger.info("Engine stop requested")
        self._running = False

    async def run(
        self,
        facts: Optional[Mapping[str, Any]] = None,
        almanac: Optional[Almanac] = None,
    ) -> EngineResult:
        """Evaluate all rules.

        When ``almanac`` is given it is used as is (plus any engine facts it
        lacks), so its cache carries over between runs. Otherwise a new
        almanac is created for this run.
        """
        if self._running:
            raise EngineRunningError()

        self._running = True
        with run_context() as run_id:
            start_time = time.perf_counter()
            result = EngineResult(run_id=run_id)
            try:
                return await self._run_groups(result, facts, almanac)
            finally:
                self._running = False
                duration = time.perf_counter() - start_time
                result.evaluation_time_ms = duration * 1000
                self._record_metric("observe_histogram", "engine_run_duration_seconds", duration)
                self.logger.info(
                    "Engine run completed",
                    events=len(result.events),
                    matched=len(result.results),
                    failed=len(result.failure_results),
                    evaluation_time_ms=round(result.evaluation_time_ms, 3),
                )

    async def _run_groups(
        self,
        result: EngineResult,
        facts: Optional[Mapping[str, Any]],
        almanac: Optional[Almanac],
    ) -> EngineResult:
        if almanac is None:
            almanac = self.create_almanac()
        else:
            for fact in self._facts.values():
                if almanac.get_fact(fact.id) is None:
                    almanac.add_fact(fact)
        result.almanac = almanac

        for fact_id, value in (facts or {}).items():
            almanac.add_runtime_fact(fact_id, value)

        semaphore = asyncio.Semaphore(self.options.max_concurrency)
        for priority, group in itertools.groupby(self.rules, key=lambda r: r.priority):
            if not self._running:
                self.logger.info("Engine run stopped", priority=priority)
                break

            outcomes = await asyncio.gather(
                *[self._evaluate_with_limit(rule, almanac, semaphore) for rule in group],
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
                self._collect(result, outcome)

        return result

    def _collect(self, result: EngineResult, rule_result: RuleResult) -> None:
        if rule_result.result and rule_result.event is not None:
            result.events.append(rule_result.event)
            result.results.append(rule_result)
        else:
            if rule_result.error is None:
                result.failure_events.append(rule_result.rule.event)
            result.failure_results.append(rule_result)

    async def _evaluate_with_limit(self, rule: Rule, almanac: Almanac, semaphore: asyncio.Semaphore) -> RuleResult:
        async with semaphore:
            return await self.evaluate_rule(rule, almanac)

    async def evaluate_rule(self, rule: Rule, almanac: Almanac) -> RuleResult:
        """Evaluate one rule; errors propagate unless continue_on_error is set."""
        try:
            matched = await self.evaluate_conditions(rule.conditions, almanac)
            event = await self._render_event(rule.event, almanac) if matched else None
        except Exception as exc:
            if not self.options.continue_on_error:
                self._record_metric("increment_counter", "rule_evaluations_total", outcome="error")
                raise
            self.logger.error("Rule evaluation error", rule_id=rule.id, error=str(exc))
            self._record_metric("increment_counter", "rule_evaluations_total", outcome="error")
            return RuleResult(rule=rule, result=False, error=ErrorResponse.from_exception(exc))

        self._record_metric("increment_counter", "rule_evaluations_total",
                            outcome="matched" if matched else "unmatched")
        self.logger.debug("Rule evaluation result", rule_id=rule.id, matched=matched)
        return RuleResult(rule=rule, result=matched, event=event)

    async def evaluate_conditions(self, group: ConditionGroup, almanac: Almanac) -> bool:
        """Walk an all/any group with short-circuiting."""
        for node in group.conditions:
            if isinstance(node, ConditionGroup):
                outcome = await self.evaluate_conditions(node, almanac)
            else:
                outcome = await self.evaluate_condition(node, almanac)

            if group.boolean_operator == "all" and not outcome:
                return False
            if group.boolean_operator == "any" and outcome:
                return True

        return group.boolean_operator == "all"

    async def evaluate_condition(self, condition: Condition, almanac: Almanac) -> bool:
        operator = self.operators.get_operator(condition.operator)

        fact_value = await almanac.fact_value(condition.fact, condition.params or None)
        if condition.path:
            fact_value = almanac.path_resolver.resolve_value(fact_value, condition.path)

        outcome = operator(fact_value, condition.value)
        self.logger.debug(
            "Condition evaluated",
            fact=condition.fact,
            operator=condition.operator,
            path=condition.path,
            result=outcome,
        )
        return outcome

    async def _render_event(self, event: Event, almanac: Almanac) -> Event:
        """Copy the event, substituting "{{ fact_id }}" and "$.fact_id[.path]" params with fact values."""
        params = dict(event.params)
        if self.options.replace_facts_in_event_params:
            for name, value in event.params.items():
                if not isinstance(value, str):
                    continue

                match = FACT_TEMPLATE.match(value)
                if match:
                    params[name] = await almanac.fact_value(match.group(1))
                    continue

                match = FACT_PATH.match(value)
                if match:
                    fact_value = await almanac.fact_value(match.group(1))
                    if match.group(2):
                        fact_value = almanac.path_resolver.resolve_value(fact_value, "$" + match.group(2))
                    params[name] = fact_value

        return event.model_copy(update={"params": params})

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "total_rules": len(self._rules),
            "priorities": sorted({r.priority for r in self._rules.values()}),
            "facts": sorted(self._facts),
            "operators": self.operators.names(),
            "running": self._running,
        }

    def _record_metric(self, method: str, *args, **labels) -> None:
        if not self.metrics:
            return

        try:
            getattr(self.metrics, method)(*args, **labels)
        except Exception as exc:  # pragma: no cover - metrics failures should never break evaluation
            self.logger.debug("Failed to record engine metric", method=method, error=str(exc))
