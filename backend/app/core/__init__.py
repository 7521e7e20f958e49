"""Core Layer - domain types, errors and request-independent rules.

Invariants:
    - No database or network access; nothing here opens a connection or socket
    - No module in core/ imports from services/, api/ or infrastructure/
    - Library use is limited to parsing and verification (jose tokens,
      graphql-core documents, SQLAlchemy URL objects); logging is allowed
"""
