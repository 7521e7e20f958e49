"""Global error handlers - gateway envelopes and the catch-all."""

from httpx import ASGITransport, AsyncClient

from app.core.errors import PoolFault
from app.main import create_app

from tests.fakes import FakePool


def _app(make_config):
    app = create_app(make_config(), FakePool())

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret connection string leaked")

    @app.get("/fault")
    async def fault():
        raise PoolFault("connection refused")

    return app


async def _get(app, path):
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        return await client.get(path)


async def test_unexpected_error_is_generic(make_config):
    res = await _get(_app(make_config), "/boom")
    assert res.status_code == 500
    error = res.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert error["message"] == "An unexpected error occurred"
    assert "secret" not in res.text


async def test_gateway_error_uses_its_status_without_retry_after(make_config):
    res = await _get(_app(make_config), "/fault")
    assert res.status_code == 503
    error = res.json()["error"]
    assert error["code"] == "POOL_FAULT"
    assert error["retryable"] is False
    assert error["context"]["path"] == "/fault"
    assert "retry-after" not in res.headers
