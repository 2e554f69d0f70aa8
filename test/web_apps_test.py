import json
import logging

from attr import evolve
from pytest import fixture, LogCaptureFixture

from conftest import FakeControlPlane, load_json, load_file
from fix_appservice.arm_client import ArmClient
from fix_appservice.config import AppServiceConfig
from fix_appservice.model import WebApp
from fix_appservice.result import Ok, Err, ErrorKind
from fix_appservice.service.web_apps import WebAppService

SitesPath = "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Web/sites"


@fixture
def service(config: AppServiceConfig, client: ArmClient) -> WebAppService:
    return WebAppService(config, client)


async def test_list_web_apps_follows_next_link(control_plane: FakeControlPlane, service: WebAppService) -> None:
    first_page = load_file("sites.json").replace(
        "NEXT_LINK", f"{control_plane.url}{SitesPath}?api-version=2024-11-01&$skiptoken=2"
    )
    control_plane.reply("GET", SitesPath, 200, first_page)
    control_plane.reply("GET", SitesPath, 200, load_json("sites_page2.json"), query={"$skiptoken": "2"})
    result = await service.list_web_apps()
    assert isinstance(result, Ok)
    assert [a.name for a in result.value] == ["shop-frontend", "order-api"]
    assert [r.query.get("$skiptoken") for r in control_plane.requests] == [None, "2"]


async def test_list_web_apps_failure(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("GET", SitesPath, 403, {"error": {"code": "AuthorizationFailed"}})
    result = await service.list_web_apps()
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.http
    assert result.status_code == 403
    assert result.method == "GET"
    assert result.request_url is not None and SitesPath in result.request_url
    assert result.response_body is not None and "AuthorizationFailed" in result.response_body


async def test_missing_configuration(
    control_plane: FakeControlPlane, config: AppServiceConfig, client: ArmClient, caplog: LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="fix.appservice")
    service = WebAppService(evolve(config, private=evolve(config.private, resource_group="")), client)
    for result in [await service.list_web_apps(), await service.get_web_app("a"), await service.start_web_app("a")]:
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.configuration_missing
    assert "Subscription ID or Resource Group not configured" in caplog.text
    assert control_plane.requests == []


async def test_get_web_app(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("GET", "/sites/shop-frontend", 200, load_json("site.json"))
    result = await service.get_web_app("shop-frontend")
    assert isinstance(result, Ok)
    assert result.value.name == "shop-frontend"
    assert result.value.runtime == "Unknown"
    assert control_plane.requests[0].path == f"{SitesPath}/shop-frontend"

    missing = await service.get_web_app("missing")
    assert isinstance(missing, Err)
    assert missing.status_code == 404


async def test_get_web_app_with_invalid_body(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("GET", "/sites/broken", 200, "this is not json")
    result = await service.get_web_app("broken")
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.parse


async def test_create_web_app(control_plane: FakeControlPlane, service: WebAppService) -> None:
    created = load_json("site.json")
    control_plane.reply("PUT", "/sites/shop-frontend", 200, created)
    app = WebApp(name="shop-frontend", location="West Europe", azure_kind="app,linux", app_settings={"A": "1"})
    farm_id = "/subscriptions/sub-1/resourceGroups/rg-1/providers/Microsoft.Web/serverfarms/shop-plan"
    result = await service.create_web_app(app, farm_id)
    assert isinstance(result, Ok)
    assert result.value.arm_id == created["id"]
    body = control_plane.requests[0].body
    assert body["location"] == "West Europe"
    assert body["kind"] == "app,linux"
    assert body["properties"]["serverFarmId"] == farm_id
    assert body["properties"]["siteConfig"]["appSettings"] == [{"name": "A", "value": "1"}]


async def test_update_web_app(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("PATCH", "/sites/shop-frontend", 200)
    app = WebApp(name="shop-frontend", always_on=True, web_sockets_enabled=True)
    result = await service.update_web_app(app)
    # no body: the given app is returned
    assert result == Ok(app)
    request = control_plane.requests_for("PATCH")[0]
    assert request.body["properties"]["siteConfig"]["webSocketsEnabled"] is True
    assert request.body["properties"]["siteConfig"]["alwaysOn"] is True


async def test_lifecycle_actions(control_plane: FakeControlPlane, service: WebAppService) -> None:
    for action in ["start", "stop", "restart"]:
        control_plane.reply("POST", f"/sites/shop-frontend/{action}", 200)
    control_plane.reply("DELETE", "/sites/shop-frontend", 200)
    assert await service.start_web_app("shop-frontend") == Ok(True)
    assert await service.stop_web_app("shop-frontend") == Ok(True)
    assert await service.restart_web_app("shop-frontend") == Ok(True)
    assert await service.delete_web_app("shop-frontend") == Ok(True)
    assert [(r.method, r.path.rsplit("/", 1)[-1]) for r in control_plane.requests] == [
        ("POST", "start"),
        ("POST", "stop"),
        ("POST", "restart"),
        ("DELETE", "shop-frontend"),
    ]


async def test_delete_missing_web_app_is_a_failure(control_plane: FakeControlPlane, service: WebAppService) -> None:
    result = await service.delete_web_app("missing")
    assert isinstance(result, Err)
    assert result.status_code == 404


async def test_failure_with_invalid_encoding(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("DELETE", "/sites/shop-frontend", 500, b"\xff\xfe broken")
    result = await service.delete_web_app("shop-frontend")
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.http
    assert result.status_code == 500
    assert result.response_body is not None and "broken" in result.response_body


async def test_get_metrics(control_plane: FakeControlPlane, service: WebAppService) -> None:
    metrics_path = "/sites/shop-frontend/providers/Microsoft.Insights/metrics"
    control_plane.reply("GET", metrics_path, 200, load_json("metrics.json"))
    result = await service.get_metrics("shop-frontend")
    assert isinstance(result, Ok)
    assert result.value["CPU"] == 12.5
    assert result.value["Requests"] == 42.0
    query = control_plane.requests[0].query
    assert query["api-version"] == "2023-10-01"
    assert query["metricnames"] == "CpuTime,MemoryWorkingSet,Requests,HttpResponseTime"


async def test_get_app_service_plan(control_plane: FakeControlPlane, service: WebAppService) -> None:
    control_plane.reply("GET", "/sites/shop-frontend", 200, load_json("site.json"))
    control_plane.reply("GET", "/serverfarms/shop-plan", 200, load_json("serverfarm.json"))
    result = await service.get_app_service_plan("shop-frontend")
    assert isinstance(result, Ok)
    assert result.value.name == "shop-plan"
    assert result.value.pricing_tier.sku == "P1v3"

    without_plan = load_json("site.json")
    del without_plan["properties"]["serverFarmId"]
    control_plane.reply("GET", "/sites/no-plan", 200, json.dumps(without_plan))
    assert isinstance(await service.get_app_service_plan("no-plan"), Err)


async def test_transport_error(config: AppServiceConfig, client: ArmClient, control_plane: FakeControlPlane) -> None:
    # nothing listens on this port
    unreachable = ArmClient("http://127.0.0.1:1", config.api_version, client.credentials)
    service = WebAppService(config, unreachable)
    result = await service.get_web_app("shop-frontend")
    await unreachable.close()
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.transport
    assert result.request_url == "http://127.0.0.1:1" + f"{SitesPath}/shop-frontend?api-version=2024-11-01"
