"""Services Layer - process-level orchestration (lifecycle supervision).

Invariants:
    - Services wire core/ and infrastructure/ together; they hold no domain rules
"""
