"""
Pure functions that translate ARM resource json into the domain model.
None of the functions here performs any IO.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Iterable, Tuple, ClassVar

from dateutil.parser import isoparse

from fix_appservice.json_bender import Bender, S, K, F, MapDict, EmptyToNone, bend
from fix_appservice.model import (
    WebApp,
    WebAppStatus,
    AppServicePlan,
    PricingTier,
    EnvironmentVariable,
    ConnectionStringEntry,
    SettingSource,
    utc,
)
from fix_appservice.types import Json

log = logging.getLogger("fix.appservice")


def extract_resource_group(resource_id: Optional[str]) -> str:
    """
    /subscriptions/{sub}/resourceGroups/{rg}/providers/... -> rg
    The segment name is compared case-insensitive. Returns an empty string if there is no such segment.
    """
    if not resource_id:
        return ""
    parts = resource_id.split("/")
    for idx in range(len(parts) - 1):
        if parts[idx].lower() == "resourcegroups":
            return parts[idx + 1]
    return ""


def map_state(state: Optional[str]) -> str:
    if state is None:
        return WebAppStatus.unknown
    lowered = state.lower()
    if lowered == "running":
        return WebAppStatus.running
    elif lowered == "stopped":
        return WebAppStatus.stopped
    return state


def determine_runtime(site_config: Optional[Json], kind: Optional[str]) -> str:
    if site_config is None:
        return "Unknown"

    # explicit framework strings win
    for key in ("linuxFxVersion", "windowsFxVersion"):
        if value := site_config.get(key):
            return str(value)

    for key, display in (
        ("javaVersion", "Java"),
        ("pythonVersion", "Python"),
        ("nodeVersion", "Node"),
        ("phpVersion", "PHP"),
        ("netFrameworkVersion", ".NET"),
    ):
        if value := site_config.get(key):
            return f"{display} {value}"

    lowered = (kind or "").lower()
    if "linux" in lowered:
        return "Linux"
    if "functionapp" in lowered:
        return "Function App"
    return "Windows"


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = isoparse(value)
        except ValueError:
            log.debug(f"Can not parse timestamp {value}")
            return None
    else:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _resource_group_of(js: Json) -> str:
    return S("properties", "resourceGroup")(js) or extract_resource_group(S("id")(js))


def _runtime_of(js: Json) -> str:
    return determine_runtime(S("properties", "siteConfig")(js), S("kind")(js))


def _plan_reference(server_farm_id: str) -> AppServicePlan:
    # only the reference is known from the site: the plan itself is fetched with get_app_service_plan
    return AppServicePlan(
        id=server_farm_id,
        name=server_farm_id.rstrip("/").rsplit("/", 1)[-1],
        resource_group=extract_resource_group(server_farm_id),
    )


def _connection_strings(value: Any) -> Dict[str, str]:
    # siteConfig.connectionStrings: [{"name": ..., "connectionString": ..., "type": ...}]
    if not isinstance(value, list):
        return {}
    return {e["name"]: e.get("connectionString") or "" for e in value if isinstance(e, dict) and e.get("name")}


SettingValues = MapDict(value_bender=F(lambda v: "" if v is None else str(v)))


class WebAppMapping:
    mapping: ClassVar[Dict[str, Bender]] = {
        # the name is used as id: it is stable and addresses the site within the resource group
        "id": S("name", default=""),
        "name": S("name", default=""),
        "arm_id": S("id"),
        "azure_kind": S("kind", default="app"),
        "resource_group": F(_resource_group_of),
        "location": S("location", default=""),
        "app_service_plan": S("properties", "serverFarmId") >> EmptyToNone >> F(_plan_reference),
        "status": (S("properties", "state") >> F(map_state)).or_else(K(WebAppStatus.unknown)),
        "url": (S("properties", "defaultHostName") >> EmptyToNone >> F(lambda h: f"https://{h}")).or_else(K("")),
        "https_only": S("properties", "httpsOnly", default=False),
        "http_version": S("properties", "siteConfig", "http20Enabled", default=False)
        >> F(lambda enabled: "2.0" if enabled else "1.1"),
        "web_sockets_enabled": S("properties", "siteConfig", "webSocketsEnabled", default=False),
        "always_on": S("properties", "siteConfig", "alwaysOn", default=False),
        "enabled_host_names": S("properties", "enabledHostNames").or_else(F(lambda _: [])),
        "runtime": F(_runtime_of),
        "created_date": (S("systemData", "createdAt") >> F(parse_datetime)).or_else(F(lambda _: utc())),
        "last_modified_date": (S("properties", "lastModifiedTimeUtc") >> F(parse_datetime)).or_else(
            F(lambda _: utc())
        ),
        "app_settings": (S("properties", "siteConfig", "appSettings") >> SettingValues).or_else(F(lambda _: {})),
        "connection_strings": (S("properties", "siteConfig", "connectionStrings") >> F(_connection_strings)).or_else(
            F(lambda _: {})
        ),
        "current_instances": S("properties", "siteConfig", "numberOfWorkers", default=1),
    }


def web_app_from_arm(js: Json) -> Optional[WebApp]:
    """
    Map an ARM site resource to a WebApp.
    If the json can not be mapped, the problem is logged and None is returned.
    """
    try:
        return WebApp(**bend(WebAppMapping.mapping, js))
    except Exception as e:
        log.warning(f"Failed to map json into WebApp: {e}. Source: {js}")
        return None


def web_apps_from_arm(items: Iterable[Json]) -> List[WebApp]:
    return [app for app in (web_app_from_arm(item) for item in items) if app is not None]


# sku name -> (cores, ram in GB, storage in GB)
SkuSizes: Dict[str, Tuple[int, float, int]] = {
    "F1": (1, 1.0, 1),
    "D1": (1, 1.0, 1),
    "B1": (1, 1.75, 10),
    "B2": (2, 3.5, 10),
    "B3": (4, 7.0, 10),
    "S1": (1, 1.75, 50),
    "S2": (2, 3.5, 50),
    "S3": (4, 7.0, 50),
    "P0V3": (1, 4.0, 250),
    "P1V2": (1, 3.5, 250),
    "P2V2": (2, 7.0, 250),
    "P3V2": (4, 14.0, 250),
    "P1V3": (2, 8.0, 250),
    "P2V3": (4, 16.0, 250),
    "P3V3": (8, 32.0, 250),
}


def _pricing_tier_of(sku: Json) -> PricingTier:
    name = sku.get("name") or "B1"
    tier = sku.get("tier") or "Basic"
    cores, ram, storage = SkuSizes.get(name.upper(), (1, 1.75, 10))
    return PricingTier(name=tier, sku=name, cores=cores, ram_gb=ram, storage_gb=storage)


class AppServicePlanMapping:
    mapping: ClassVar[Dict[str, Bender]] = {
        "id": S("id", default=""),
        "name": S("name", default=""),
        "resource_group": F(_resource_group_of),
        "location": S("location", default=""),
        "tier": S("sku", "tier", default="Basic"),
        "size": S("sku", "name", default="B1"),
        "operating_system": S("properties", "reserved", default=False)
        >> F(lambda reserved: "Linux" if reserved else "Windows"),
        "number_of_workers": S("properties", "numberOfWorkers", default=1),
        "pricing_tier": (S("sku") >> F(_pricing_tier_of)).or_else(F(lambda _: PricingTier())),
        "created_date": S("systemData", "createdAt") >> F(parse_datetime),
    }


def app_service_plan_from_arm(js: Json) -> Optional[AppServicePlan]:
    try:
        return AppServicePlan(**bend(AppServicePlanMapping.mapping, js))
    except Exception as e:
        log.warning(f"Failed to map json into AppServicePlan: {e}. Source: {js}")
        return None


def _properties_of(js: Any) -> Optional[Json]:
    # a missing body or missing properties is an empty configuration, any other shape is not understood
    if js is None:
        return {}
    if not isinstance(js, dict):
        return None
    props = js.get("properties")
    if props is None:
        return {}
    return props if isinstance(props, dict) else None


def _names(value: Any) -> List[str]:
    return [n for n in value if isinstance(n, str)] if isinstance(value, list) else []


def slot_setting_names(js: Optional[Json]) -> Tuple[List[str], List[str]]:
    """
    config/slotConfigNames -> (app setting names, connection string names)
    """
    props = _properties_of(js) or {}
    return _names(props.get("appSettingNames")), _names(props.get("connectionStringNames"))


def _setting_value(value: Any) -> str:
    return "" if value is None else str(value)


def environment_variables_from_arm(
    js: Optional[Json], slot_names: Iterable[str] = ()
) -> Optional[List[EnvironmentVariable]]:
    """
    config/appsettings/list -> environment variables sorted by name.
    Returns None if the json does not have the expected shape.
    """
    props = _properties_of(js)
    if props is None:
        log.warning(f"Unexpected app settings json: {js}")
        return None
    sticky = set(slot_names)
    result = [EnvironmentVariable.of(name, _setting_value(value), name in sticky) for name, value in props.items()]
    return sorted(result, key=lambda e: e.name)


def connection_strings_from_arm(
    js: Optional[Json], slot_names: Iterable[str] = ()
) -> Optional[List[ConnectionStringEntry]]:
    """
    config/connectionstrings/list -> connection strings sorted by name.
    Returns None if the json does not have the expected shape.
    """
    props = _properties_of(js)
    if props is None or not all(entry is None or isinstance(entry, dict) for entry in props.values()):
        log.warning(f"Unexpected connection strings json: {js}")
        return None
    sticky = set(slot_names)
    result = [
        ConnectionStringEntry(
            name=name,
            value=_setting_value((entry or {}).get("value")),
            type=(entry or {}).get("type") or "Custom",
            source=SettingSource.app_service,
            is_slot_setting=name in sticky,
        )
        for name, entry in props.items()
    ]
    return sorted(result, key=lambda c: c.name)


def environment_variables_to_arm(variables: Iterable[EnvironmentVariable]) -> Json:
    return {"properties": {v.name: v.value for v in variables}}


def connection_strings_to_arm(entries: Iterable[ConnectionStringEntry]) -> Json:
    return {"properties": {c.name: {"value": c.value, "type": c.type} for c in entries}}


def web_app_to_arm(app: WebApp, server_farm_id: Optional[str] = None, with_configuration: bool = True) -> Json:
    """
    Site resource body for create (PUT) and update (PATCH).
    App settings and connection strings are only part of the body, if with_configuration is set.
    """
    site_config: Json = {
        "alwaysOn": app.always_on,
        "http20Enabled": app.http_version == "2.0",
        "webSocketsEnabled": app.web_sockets_enabled,
        "numberOfWorkers": app.current_instances,
    }
    if with_configuration and app.app_settings:
        site_config["appSettings"] = [{"name": k, "value": v} for k, v in app.app_settings.items()]
    if with_configuration and app.connection_strings:
        site_config["connectionStrings"] = [
            {"name": k, "connectionString": v, "type": "Custom"} for k, v in app.connection_strings.items()
        ]
    properties: Json = {"httpsOnly": app.https_only, "siteConfig": site_config}
    if server_farm_id:
        properties["serverFarmId"] = server_farm_id
    body: Json = {"kind": app.azure_kind, "properties": properties}
    if app.location:
        body["location"] = app.location
    return body


# metric name in Azure Monitor -> (display name, aggregation)
SiteMetrics: Dict[str, Tuple[str, str]] = {
    "CpuTime": ("CPU", "total"),
    "MemoryWorkingSet": ("Memory", "average"),
    "Requests": ("Requests", "total"),
    "HttpResponseTime": ("ResponseTime", "average"),
}


def metrics_from_arm(js: Optional[Json]) -> Dict[str, float]:
    """
    Latest non-empty datapoint per metric.
    """
    result: Dict[str, float] = {}
    for metric in (js or {}).get("value") or []:
        name = S("name", "value")(metric)
        display, aggregation = SiteMetrics.get(name, (name, "average"))
        for series in metric.get("timeseries") or []:
            for point in reversed(series.get("data") or []):
                if (value := point.get(aggregation)) is not None:
                    result[display] = float(value)
                    break
            if display in result:
                break
    return result
