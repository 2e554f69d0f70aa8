from datetime import datetime, timezone
from typing import ClassVar, Optional, Dict, List

from attr import define, field

KeyVaultReferencePrefix = "@Microsoft.KeyVault"
ScmHostMarker = ".scm."


class SettingSource:
    app_service = "App Service"
    key_vault_reference = "Key Vault Reference"


class WebAppStatus:
    running = "Running"
    stopped = "Stopped"
    unknown = "Unknown"


def utc() -> datetime:
    return datetime.now(timezone.utc)


@define(eq=False, slots=False)
class PricingTier:
    kind: ClassVar[str] = "pricing_tier"
    name: str = field(default="Basic", metadata={"description": "Tier name of the plan, e.g. Basic or PremiumV3."})
    sku: str = field(default="B1", metadata={"description": "SKU name, e.g. B1 or P1v3."})
    cores: int = field(default=1)
    ram_gb: float = field(default=1.75)
    storage_gb: int = field(default=10)


@define(eq=False, slots=False)
class AppServicePlan:
    kind: ClassVar[str] = "app_service_plan"
    id: str = field(default="", metadata={"description": "ARM resource id of the plan."})
    name: str = field(default="")
    resource_group: str = field(default="")
    location: str = field(default="")
    tier: str = field(default="Basic")
    size: str = field(default="B1")
    operating_system: str = field(default="Windows")
    number_of_workers: int = field(default=1)
    pricing_tier: PricingTier = field(factory=PricingTier)
    created_date: Optional[datetime] = field(default=None)


@define(eq=False, slots=False)
class WebApp:
    kind: ClassVar[str] = "web_app"
    # identity
    id: str = field(default="", metadata={"description": "Stable identifier, the site name for ARM backed apps."})
    name: str = field(default="")
    arm_id: Optional[str] = field(default=None, metadata={"description": "Full ARM resource id."})
    azure_kind: str = field(default="app", metadata={"description": "ARM kind, e.g. app or app,linux."})
    # placement
    resource_group: str = field(default="")
    location: str = field(default="")
    app_service_plan: Optional[AppServicePlan] = field(default=None)
    # operational state
    status: str = field(default=WebAppStatus.unknown)
    # network surface
    url: str = field(default="")
    https_only: bool = field(default=True)
    http_version: str = field(default="2.0")
    web_sockets_enabled: bool = field(default=False)
    always_on: bool = field(default=False)
    enabled_host_names: List[str] = field(factory=list)
    # runtime
    runtime: str = field(default="")
    # timestamps
    created_date: datetime = field(factory=utc)
    last_modified_date: datetime = field(factory=utc)
    # configuration
    app_settings: Dict[str, str] = field(factory=dict)
    connection_strings: Dict[str, str] = field(factory=dict)
    # scaling
    current_instances: int = field(default=1)
    # monitoring
    application_insights_enabled: bool = field(default=False)


def setting_source(value: Optional[str]) -> str:
    if isinstance(value, str) and value.lower().startswith(KeyVaultReferencePrefix.lower()):
        return SettingSource.key_vault_reference
    return SettingSource.app_service


@define(eq=False, slots=False)
class EnvironmentVariable:
    kind: ClassVar[str] = "environment_variable"
    name: str = field()
    value: str = field(default="")
    source: str = field(default=SettingSource.app_service)
    is_slot_setting: bool = field(default=False)
    is_value_hidden: bool = field(default=True)

    @staticmethod
    def of(name: str, value: Optional[str], is_slot_setting: bool = False) -> "EnvironmentVariable":
        value = value or ""
        return EnvironmentVariable(name, value, setting_source(value), is_slot_setting)


@define(eq=False, slots=False)
class ConnectionStringEntry:
    kind: ClassVar[str] = "connection_string_entry"
    name: str = field()
    value: str = field(default="")
    type: str = field(default="Custom", metadata={"description": "SQLServer, SQLAzure, MySql, PostgreSQL, Custom"})
    source: str = field(default=SettingSource.app_service)
    is_slot_setting: bool = field(default=False)
    is_value_hidden: bool = field(default=True)


@define(eq=False, slots=False)
class PublishingCredentials:
    kind: ClassVar[str] = "publishing_credentials"
    user_name: str = field()
    password: str = field()
    scm_url: Optional[str] = field(default=None, metadata={"description": "URL of the SCM (deployment) endpoint."})
