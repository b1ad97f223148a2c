"""Core Layer: lifecycle rules, domain types, errors and collaborator contracts.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - enforce_lifecycle functions are pure and deterministic
"""
