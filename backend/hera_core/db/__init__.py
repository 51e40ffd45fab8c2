"""Database Declarative Base — shared metadata for models, migrations and tests.

Invariants:
    - Engines and sessions live in infrastructure/database.py, never here
"""
