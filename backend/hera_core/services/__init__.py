"""Services Layer — tenant-scoped store operations, stat resolution, action execution.

Invariants:
    - Every service is constructed per request with an explicit organization id
    - Services orchestrate IO around pure core functions; rules live in core/

Design Decisions:
    - Action operations use an explicit dispatch dict (no auto-discovery)
"""
