"""API Layer — FastAPI routes, dependencies and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON responses
    - Every route passes gateway steps 1-2 through api/dependencies.py

Design Decisions:
    - Thin routes delegate to services and core
"""
