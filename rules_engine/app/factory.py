"""
Builders for engines, almanacs and rule definitions.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from shared.config import BaseConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector
from .almanac.almanac import Almanac
from .almanac.fact import Fact
from .rules.engine import Engine, EngineOptions
from .rules.models import Condition, ConditionGroup, Event, Rule


logger = get_logger("rules_engine.factory")


def _metrics_for(config: BaseConfig) -> Optional[MetricsCollector]:
    if not config.enable_metrics:
        return None
    return MetricsCollector(config.service_name)


def create_engine(
    rules: Optional[Iterable[Rule]] = None,
    facts: Optional[Iterable[Fact]] = None,
    config: Optional[BaseConfig] = None,
    *,
    setup_logging: bool = False,
) -> Engine:
    """Create an engine configured from ``config`` (or RULES_* environment variables)."""
    config = config or get_config()
    if setup_logging:
        configure_logging(config.service_name, config.log_level)

    engine = Engine(rules, EngineOptions.from_config(config), metrics=_metrics_for(config))
    for fact in facts or []:
        engine.add_fact(fact)

    logger.info(
        "Engine created",
        env=config.env,
        rules=len(engine.rules),
        enable_fact_caching=config.enable_fact_caching,
        cache_max_size=config.cache_max_size,
        max_concurrency=config.max_concurrency,
    )
    return engine


def create_almanac(
    facts: Optional[Iterable[Fact]] = None,
    runtime_facts: Optional[Mapping[str, Any]] = None,
    config: Optional[BaseConfig] = None,
) -> Almanac:
    """Create a standalone almanac, e.g. one shared across several runs."""
    config = config or get_config()
    options = EngineOptions.from_config(config).almanac_options()
    almanac = Almanac(facts, options, metrics=_metrics_for(config))
    for fact_id, value in (runtime_facts or {}).items():
        almanac.add_runtime_fact(fact_id, value)
    return almanac


def create_condition(
    fact: str,
    operator: str,
    value: Any,
    path: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
) -> Condition:
    return Condition(fact=fact, operator=operator, value=value, path=path, params=params or {})


def create_condition_group(
    boolean_operator: str,
    conditions: List[Union[Condition, ConditionGroup]],
) -> ConditionGroup:
    return ConditionGroup(boolean_operator=boolean_operator, conditions=conditions)


def create_event(event_type: str, params: Optional[Dict[str, Any]] = None) -> Event:
    return Event(type=event_type, params=params or {})


def create_rule(rule_id: str, conditions: ConditionGroup, event: Event, priority: int = 1) -> Rule:
    return Rule(id=rule_id, conditions=conditions, event=event, priority=priority)


def create_fact(fact_id: str, value: Any, **options: Any) -> Fact:
    """Create a constant fact; ``options`` are Fact cache/priority settings."""
    return Fact.from_value(fact_id, value, **options)
