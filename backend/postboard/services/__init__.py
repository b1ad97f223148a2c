"""Services Layer: post store, tag resolver, enrichment and the lifecycle engine.

Invariants:
    - Every service is bound to one AsyncSession, the transaction of one logical operation
    - Only the lifecycle engine commits
"""
