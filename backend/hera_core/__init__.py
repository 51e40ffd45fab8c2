"""HERA Universal Core — multi-tenant six-relation store with a declarative policy engine.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
