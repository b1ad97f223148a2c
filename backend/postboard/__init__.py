"""Postboard Application Package: help-request posts with point bounties.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
