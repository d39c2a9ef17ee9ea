"""
Validation Kernel

A hierarchical validation gate for business actions with:
- Configurable threshold ladders per workspace / entity type / category
- Auto-approval below a configured floor
- Ordered escalation through level_1 < level_2 < level_3 < owner
- Append-only, hash-chained decision trail
- Optimistic concurrency on every decision
"""

__version__ = "0.1.0"
