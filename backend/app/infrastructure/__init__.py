"""Infrastructure Layer - database pool, GraphQL engine and logging setup.

Invariants:
    - Driver and library errors are mapped to core.errors before leaving this layer
    - Nothing here reads the environment; settings arrive as ServiceConfig/EngineConfig
"""
