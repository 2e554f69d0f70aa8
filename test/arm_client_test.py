from typing import Optional

import pytest
from aiohttp import ClientSession

from conftest import FakeControlPlane
from fix_appservice.arm_client import ArmClient, ArmResponse, with_api_version
from fix_appservice.credentials import CredentialProvider


class StaticHeaderProvider(CredentialProvider):
    async def authorization_header(self) -> Optional[str]:
        return "Bearer static"


def test_with_api_version() -> None:
    assert with_api_version("/sites", "2024-11-01") == "/sites?api-version=2024-11-01"
    assert with_api_version("/metrics?metricnames=Requests", "v") == "/metrics?metricnames=Requests&api-version=v"


async def test_url(client: ArmClient) -> None:
    base = client.base_url
    assert client.url("/subscriptions/s") == f"{base}/subscriptions/s?api-version=2024-11-01"
    assert client.url("subscriptions/s", "2025-03-01") == f"{base}/subscriptions/s?api-version=2025-03-01"
    next_link = "https://management.azure.com/subscriptions/s/sites?api-version=2024-11-01&$skiptoken=abc"
    assert client.url(next_link) == next_link
    assert client.url("https://other/x") == "https://other/x?api-version=2024-11-01"


def test_response() -> None:
    assert ArmResponse("GET", "u", 204, "").success
    assert not ArmResponse("GET", "u", 404, "").success
    assert ArmResponse("GET", "u", 200, "").json() is None
    assert ArmResponse("GET", "u", 200, '{"a": 1}').json() == {"a": 1}
    with pytest.raises(ValueError):
        ArmResponse("GET", "u", 200, "<xml/>").json()


async def test_send(control_plane: FakeControlPlane, client: ArmClient) -> None:
    control_plane.reply("PUT", "/config/appsettings", 200, {"properties": {}})
    response = await client.send("PUT", "/sites/a/config/appsettings", {"properties": {"A": "1"}})
    assert response.status_code == 200
    assert response.json() == {"properties": {}}
    assert response.method == "PUT"
    assert "api-version=2024-11-01" in response.url
    request = control_plane.requests[0]
    assert request.query == {"api-version": "2024-11-01"}
    assert request.body == {"properties": {"A": "1"}}
    # anonymous: no authorization header
    assert "Authorization" not in request.headers


async def test_failure_is_returned_without_retry(control_plane: FakeControlPlane, client: ArmClient) -> None:
    control_plane.reply("GET", "/sites/a", 503, {"error": {"code": "ServiceUnavailable"}})
    response = await client.send("GET", "/sites/a")
    assert response.status_code == 503
    assert not response.success
    assert "ServiceUnavailable" in response.body
    assert len(control_plane.requests) == 1


async def test_body_with_invalid_encoding(control_plane: FakeControlPlane, client: ArmClient) -> None:
    control_plane.reply("GET", "/sites/a", 200, b"\xff\xfe broken")
    response = await client.send("GET", "/sites/a")
    assert response.status_code == 200
    assert response.body == "\ufffd\ufffd broken"


async def test_authorization_header(control_plane: FakeControlPlane) -> None:
    control_plane.reply("GET", "/sites/a", 200, {})
    async with ClientSession() as session:
        client = ArmClient(control_plane.url, "2024-11-01", StaticHeaderProvider(), session)
        await client.send("GET", "/sites/a")
        await client.close()
        # the session is owned by the caller
        assert not session.closed
    assert control_plane.requests[0].headers["Authorization"] == "Bearer static"
