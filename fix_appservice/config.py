import logging
import os
from enum import Enum
from typing import ClassVar, Optional, Dict, Any
from urllib.parse import urlparse

import yaml
from attr import define, field, evolve

from fix_appservice.json import from_json

log = logging.getLogger("fix.appservice")

DefaultSiteExtensions: Dict[str, str] = {
    "application_insights": "Microsoft.ApplicationInsights.AzureWebSites",
    "aspnet_core_logging": "Microsoft.AspNetCore.AzureAppServices.SiteExtension",
    "easy_agent": "Microsoft.AppService.EasyAgent",
}


class AuthType(Enum):
    arm = "arm"
    private = "private"
    certificate = "certificate"
    none = "none"


class OperatingMode(Enum):
    live = "live"
    offline_demo = "offline_demo"


@define
class ArmSettings:
    kind: ClassVar[str] = "arm"
    base_url: str = field(
        default="https://management.azure.com",
        metadata={"description": "Base URL of the Azure Resource Manager control plane."},
    )
    subscription_id: str = field(default="", metadata={"description": "Subscription that holds the web apps."})
    resource_group: str = field(default="", metadata={"description": "Resource group that holds the web apps."})


@define
class CertificateSettings:
    kind: ClassVar[str] = "certificate"
    thumbprint: str = field(default="", metadata={"description": "SHA-1 thumbprint of the client certificate."})
    store_name: str = field(default="My", metadata={"description": "Name of the certificate store."})
    store_location: str = field(
        default="CurrentUser",
        metadata={"description": "Location of the certificate store (CurrentUser, LocalMachine)."},
    )
    store_path: str = field(
        default="~/.fix/certs",
        metadata={
            "description": "Root directory of the certificate stores.\n"
            "Certificates are looked up in <store_path>/<store_location>/<store_name>/*.pem"
        },
    )


@define
class PrivateSettings:
    kind: ClassVar[str] = "private"
    base_url: str = field(default="", metadata={"description": "Base URL of the private control plane."})
    subscription_id: str = field(default="", metadata={"description": "Subscription that holds the web apps."})
    resource_group: str = field(default="", metadata={"description": "Resource group that holds the web apps."})
    certificate: CertificateSettings = field(
        factory=CertificateSettings,
        metadata={"description": "Client certificate used for TLS mutual authentication."},
    )


@define
class AppServiceConfig:
    kind: ClassVar[str] = "appservice"
    api_version: str = field(
        default="2024-11-01", metadata={"description": "The ARM API version to use for all site requests."}
    )
    site_extension_api_version: str = field(
        default="2025-03-01", metadata={"description": "The ARM API version to use for site extension requests."}
    )
    metrics_api_version: str = field(
        default="2023-10-01", metadata={"description": "The Azure Monitor API version to use for metric requests."}
    )
    auth_type: AuthType = field(
        default=AuthType.arm,
        metadata={
            "description": "Authentication mode.\n"
            "arm: bearer token from the default Azure credential chain.\n"
            "private/certificate: client certificate (TLS mutual auth) against a private control plane.\n"
            "none: no authentication."
        },
    )
    arm: ArmSettings = field(factory=ArmSettings, metadata={"description": "Used when auth_type is arm."})
    private: PrivateSettings = field(
        factory=PrivateSettings, metadata={"description": "Used when auth_type is not arm."}
    )
    mode: OperatingMode = field(
        default=OperatingMode.live,
        metadata={"description": "live: talk to the control plane. offline_demo: serve in-memory demo data."},
    )
    user_assigned_identity_resource_id: str = field(
        default="",
        metadata={
            "description": "Full ARM resource id of the user assigned managed identity to assign to web apps.\n"
            "Example: /subscriptions/{sub}/resourcegroups/{rg}/providers/"
            "Microsoft.ManagedIdentity/userAssignedIdentities/{name}"
        },
    )
    site_extensions: Dict[str, str] = field(
        factory=lambda: dict(DefaultSiteExtensions),
        metadata={"description": "Named site extensions that can be installed: name -> extension id."},
    )
    verify_ssl: bool = field(
        default=True,
        metadata={"description": "Verify the control plane server certificate. Only disable for development."},
    )

    @property
    def uses_arm(self) -> bool:
        return self.auth_type == AuthType.arm

    @property
    def base_url(self) -> str:
        return self.arm.base_url if self.uses_arm else self.private.base_url

    @property
    def subscription_id(self) -> str:
        return self.arm.subscription_id if self.uses_arm else self.private.subscription_id

    @property
    def resource_group(self) -> str:
        return self.arm.resource_group if self.uses_arm else self.private.resource_group

    @property
    def token_scope(self) -> str:
        # scope is inferred from the URL: <scheme>://<netloc>/.default
        ps = urlparse(self.base_url)
        return f"{ps.scheme}://{ps.netloc}/.default"

    def with_overrides(
        self,
        *,
        subscription_id: Optional[str] = None,
        resource_group: Optional[str] = None,
        auth_type: Optional[AuthType] = None,
        mode: Optional[OperatingMode] = None,
    ) -> "AppServiceConfig":
        config = evolve(self, auth_type=auth_type or self.auth_type, mode=mode or self.mode)
        changes: Dict[str, Any] = {}
        if subscription_id:
            changes["subscription_id"] = subscription_id
        if resource_group:
            changes["resource_group"] = resource_group
        if changes:
            if config.uses_arm:
                config = evolve(config, arm=evolve(config.arm, **changes))
            else:
                config = evolve(config, private=evolve(config.private, **changes))
        return config


def load_config(path: Optional[str] = None) -> AppServiceConfig:
    """
    Load the configuration from a YAML file.
    The file either holds the configuration directly or below an `appservice` section.
    If no path is given or the file does not exist, the default configuration is returned.
    """
    if path is None or not os.path.exists(path):
        if path is not None:
            log.warning(f"Configuration file {path} does not exist. Using defaults.")
        return AppServiceConfig()
    with open(path, encoding="utf-8") as f:
        js = yaml.safe_load(f) or {}
    if isinstance(js, dict) and AppServiceConfig.kind in js:
        js = js[AppServiceConfig.kind]
    return from_json(js, AppServiceConfig)
