"""Infrastructure Layer: database sessions, collaborator clients, logging.

Invariants:
    - All collaborator calls go through the resilient HTTP wrapper (timeout, retry, error mapping)
"""
