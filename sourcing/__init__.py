"""
Sourcing pipeline building blocks.

Small, mostly stateless helpers used by SourcingService: runtime settings,
authorization, dry-run rate limiting, candidate pool selection, prompt
construction and result bookkeeping.
"""
