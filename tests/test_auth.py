"""Tests for bearer token verification (services.auth)."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest
from starlette.requests import Request

from errors.exceptions import UnauthorizedError
from services.auth import clear_auth_cache, get_current_learner

_RealAsyncClient = httpx.AsyncClient


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


def _request(authorization: str | None = None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers})


def _auth_service(handler):
    """Route the auth module's outbound calls through *handler*."""
    calls: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    def factory(**kwargs):
        return _RealAsyncClient(transport=httpx.MockTransport(recording), **kwargs)

    return patch("services.auth.httpx.AsyncClient", factory), calls


class TestGetCurrentLearner:
    @pytest.mark.asyncio
    async def test_missing_header(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            await get_current_learner(_request())
        assert exc_info.value.message == "Missing authorization header"

    @pytest.mark.asyncio
    async def test_empty_bearer(self):
        with pytest.raises(UnauthorizedError):
            await get_current_learner(_request("Bearer "))

    @pytest.mark.asyncio
    async def test_verified_token(self):
        patcher, calls = _auth_service(
            lambda req: httpx.Response(200, json={"id": "learner-9", "email": "a@b.id"})
        )
        with patcher:
            learner = await get_current_learner(_request("Bearer good-token"))

        assert learner.id == "learner-9"
        assert learner.email == "a@b.id"
        assert calls[0].url.path == "/auth/v1/user"
        assert calls[0].headers["authorization"] == "Bearer good-token"

    @pytest.mark.asyncio
    async def test_result_is_cached(self):
        patcher, calls = _auth_service(lambda req: httpx.Response(200, json={"id": "learner-9"}))
        with patcher:
            await get_current_learner(_request("Bearer good-token"))
            await get_current_learner(_request("Bearer good-token"))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        patcher, _ = _auth_service(lambda req: httpx.Response(401, json={"msg": "bad jwt"}))
        with patcher, pytest.raises(UnauthorizedError) as exc_info:
            await get_current_learner(_request("Bearer expired"))
        assert exc_info.value.message == "Unauthorized"

    @pytest.mark.asyncio
    async def test_rejection_is_not_cached(self):
        patcher, calls = _auth_service(lambda req: httpx.Response(403))
        with patcher:
            for _ in range(2):
                with pytest.raises(UnauthorizedError):
                    await get_current_learner(_request("Bearer expired"))
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_response_without_id(self):
        patcher, _ = _auth_service(lambda req: httpx.Response(200, json={"email": "x@y.id"}))
        with patcher, pytest.raises(UnauthorizedError):
            await get_current_learner(_request("Bearer odd"))

    @pytest.mark.asyncio
    async def test_unreadable_response(self):
        patcher, _ = _auth_service(lambda req: httpx.Response(200, text="<html>"))
        with patcher, pytest.raises(UnauthorizedError):
            await get_current_learner(_request("Bearer odd"))

    @pytest.mark.asyncio
    async def test_auth_service_down(self):
        def handler(req):
            raise httpx.ConnectError("connection refused", request=req)

        patcher, _ = _auth_service(handler)
        with patcher, pytest.raises(UnauthorizedError) as exc_info:
            await get_current_learner(_request("Bearer any"))
        assert exc_info.value.details == "auth service unavailable"
