"""
Rules engine package.

Evaluates rules (boolean combinations of fact conditions) against facts
supplied at run time or computed on demand, and emits the events of the
rules that match.

- app.almanac: Fact definitions, the fact cache and the Almanac session.
- app.rules: Rule model, operators, path resolution and the Engine.
- app.factory: Builders wiring configuration, logging and metrics.

Guidelines:
- One Almanac per evaluation session; share one only on purpose.
- Fact compute functions may be coroutines; keep them side-effect aware,
  the Almanac runs each cacheable computation at most once per key.
"""
