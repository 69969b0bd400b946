"""
Rules package.

Defines the rule model and the evaluation engine that drives the
Almanac. Conditions are combined with "all"/"any" groups, compared with
registered operators, and matching rules produce events whose
parameters may reference fact values.

Modules of interest:
- models: Rule, condition, event and result types.
- operators: Comparison operators and their registry.
- path_resolver: "$.a.b" lookups into fact values.
- engine: Priority-ordered evaluation with bounded concurrency.
"""
