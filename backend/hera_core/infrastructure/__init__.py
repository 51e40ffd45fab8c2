"""Infrastructure Layer — database, identity verification and observability.

Invariants:
    - Infrastructure never imports from services/ or api/
    - All store failures mapped to StoreError (core/errors.py)
"""
