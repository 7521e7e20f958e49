"""Route Dependencies - hand the startup-built objects to request handlers.

Invariants:
    - The pool and config are read from app.state, set once by create_app()
    - Routes never construct pools or read the environment themselves
"""

from fastapi import Request

from app.core.repository_protocols import ConnectionSource
from app.core.service_config import ServiceConfig


def get_pool(request: Request) -> ConnectionSource:
    return request.app.state.pool


def get_config(request: Request) -> ServiceConfig:
    return request.app.state.config
