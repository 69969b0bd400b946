"""
Almanac package.

Supplies fact values to condition evaluation. Runtime facts win over
registered fact definitions; computed values are memoized per
(fact id, parameters) with optional expiry and a bounded entry count,
and can be dropped explicitly per fact or all at once.

Modules of interest:
- fact: Fact definition and cache policy.
- cache: Cache keys, entries and the expiring, size-bounded store.
- almanac: Resolution order, in-flight de-duplication and invalidation.
"""
