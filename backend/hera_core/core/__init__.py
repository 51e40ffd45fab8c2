"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, models/ or db/
    - All functions are pure and deterministic (time, tokens and verifiers are injected)

Design Decisions:
    - Functional core separated from imperative shell: the evaluator, smart code
      validator, policy gateway steps and stat formatting run without a database
"""
