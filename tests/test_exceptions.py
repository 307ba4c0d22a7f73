import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError

from core.exceptions import (
    AuthError, ConflictError, ForbiddenError, InternalError, NotFoundError, ValidationError,
    register_exception_handlers
)


def build_app():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/raise/{kind}")
    async def raise_error(kind: str):
        errors = {
            "validation": ValidationError("Bad input"),
            "conflict": ConflictError("Already exists"),
            "auth": AuthError("Invalid token"),
            "forbidden": ForbiddenError("Not allowed"),
            "missing": NotFoundError("Nothing here"),
            "internal": InternalError("Store unavailable"),
            "database": OperationalError("SELECT 1", {}, Exception("disk I/O error")),
        }
        if kind in errors:
            raise errors[kind]
        raise RuntimeError("boom")

    return app


@pytest.mark.asyncio
@pytest.mark.parametrize("kind,status_code,message", [
    ("validation", 400, "Bad input"),
    ("conflict", 409, "Already exists"),
    ("auth", 401, "Invalid token"),
    ("forbidden", 403, "Not allowed"),
    ("missing", 404, "Nothing here"),
    ("internal", 500, "Store unavailable"),
    ("database", 500, "Database unavailable"),
])
async def test_application_errors_render_envelope(kind, status_code, message):
    transport = ASGITransport(app=build_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(f"/raise/{kind}")

    assert response.status_code == status_code
    assert response.json() == {"success": False, "message": message}


@pytest.mark.asyncio
async def test_unexpected_errors_become_server_error():
    transport = ASGITransport(app=build_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/raise/anything")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Server Error", "error": "boom"}


def test_forbidden_is_an_auth_error():
    assert issubclass(ForbiddenError, AuthError)
    assert ForbiddenError("x").status_code == 403
    assert ValidationError("x", status_code=422).status_code == 422
