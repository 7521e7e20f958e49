"""Graph Gateway - PostgreSQL schema as GraphQL with per-request row-level security.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
