from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Tuple, Any

from aiohttp import ClientSession

from fix_appservice.arm_client import ArmClient
from fix_appservice.config import AppServiceConfig, OperatingMode
from fix_appservice.credentials import CredentialProvider, create_credential_provider
from fix_appservice.model import (
    WebApp,
    AppServicePlan,
    EnvironmentVariable,
    ConnectionStringEntry,
    PublishingCredentials,
)
from fix_appservice.result import Result
from fix_appservice.service.configuration import ConfigurationService
from fix_appservice.service.identity import IdentityService
from fix_appservice.service.web_apps import WebAppService

log = logging.getLogger("fix.appservice")


class AppServicePortal(ABC):
    """
    All operations the portal offers on web apps.
    Every operation returns a Result: Ok with the value or Err with the reason of the failure.
    """

    @abstractmethod
    async def list_web_apps(self) -> Result[List[WebApp]]:
        pass

    @abstractmethod
    async def get_web_app(self, name: str) -> Result[WebApp]:
        pass

    @abstractmethod
    async def create_web_app(self, app: WebApp, server_farm_id: Optional[str] = None) -> Result[WebApp]:
        pass

    @abstractmethod
    async def update_web_app(self, app: WebApp) -> Result[WebApp]:
        pass

    @abstractmethod
    async def delete_web_app(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def start_web_app(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def stop_web_app(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def restart_web_app(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def get_metrics(self, name: str) -> Result[Dict[str, float]]:
        pass

    @abstractmethod
    async def get_app_service_plan(self, name: str) -> Result[AppServicePlan]:
        pass

    @abstractmethod
    async def get_environment_variables(self, name: str) -> Result[List[EnvironmentVariable]]:
        pass

    @abstractmethod
    async def save_environment_variables(self, name: str, variables: List[EnvironmentVariable]) -> Result[bool]:
        pass

    @abstractmethod
    async def get_connection_strings(self, name: str) -> Result[List[ConnectionStringEntry]]:
        pass

    @abstractmethod
    async def save_connection_strings(self, name: str, entries: List[ConnectionStringEntry]) -> Result[bool]:
        pass

    @abstractmethod
    async def assign_identity(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def remove_identity(self, name: str) -> Result[bool]:
        pass

    @abstractmethod
    async def install_extension(self, name: str, extension: str) -> Result[bool]:
        pass

    @abstractmethod
    async def check_extension(self, name: str, extension: str) -> Result[bool]:
        pass

    @abstractmethod
    async def uninstall_extension(self, name: str, extension: str) -> Result[bool]:
        pass

    @abstractmethod
    async def get_publishing_credentials(self, name: str) -> Result[PublishingCredentials]:
        pass

    async def get_site_configuration(
        self, name: str
    ) -> Tuple[Result[List[EnvironmentVariable]], Result[List[ConnectionStringEntry]]]:
        # disjoint sub resources: no ordering required
        variables, entries = await asyncio.gather(
            self.get_environment_variables(name), self.get_connection_strings(name)
        )
        return variables, entries

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> AppServicePortal:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class ArmAppServicePortal(AppServicePortal):
    """
    Live mode: every operation is sent to the control plane.
    """

    def __init__(self, config: AppServiceConfig, client: ArmClient, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.client = client
        self.web_apps = WebAppService(config, client, logger)
        self.configuration = ConfigurationService(config, client, logger)
        self.identity = IdentityService(config, client, logger)

    async def list_web_apps(self) -> Result[List[WebApp]]:
        return await self.web_apps.list_web_apps()

    async def get_web_app(self, name: str) -> Result[WebApp]:
        return await self.web_apps.get_web_app(name)

    async def create_web_app(self, app: WebApp, server_farm_id: Optional[str] = None) -> Result[WebApp]:
        return await self.web_apps.create_web_app(app, server_farm_id)

    async def update_web_app(self, app: WebApp) -> Result[WebApp]:
        return await self.web_apps.update_web_app(app)

    async def delete_web_app(self, name: str) -> Result[bool]:
        return await self.web_apps.delete_web_app(name)

    async def start_web_app(self, name: str) -> Result[bool]:
        return await self.web_apps.start_web_app(name)

    async def stop_web_app(self, name: str) -> Result[bool]:
        return await self.web_apps.stop_web_app(name)

    async def restart_web_app(self, name: str) -> Result[bool]:
        return await self.web_apps.restart_web_app(name)

    async def get_metrics(self, name: str) -> Result[Dict[str, float]]:
        return await self.web_apps.get_metrics(name)

    async def get_app_service_plan(self, name: str) -> Result[AppServicePlan]:
        return await self.web_apps.get_app_service_plan(name)

    async def get_environment_variables(self, name: str) -> Result[List[EnvironmentVariable]]:
        return await self.configuration.get_environment_variables(name)

    async def save_environment_variables(self, name: str, variables: List[EnvironmentVariable]) -> Result[bool]:
        return await self.configuration.save_environment_variables(name, variables)

    async def get_connection_strings(self, name: str) -> Result[List[ConnectionStringEntry]]:
        return await self.configuration.get_connection_strings(name)

    async def save_connection_strings(self, name: str, entries: List[ConnectionStringEntry]) -> Result[bool]:
        return await self.configuration.save_connection_strings(name, entries)

    async def assign_identity(self, name: str) -> Result[bool]:
        return await self.identity.assign_identity(name)

    async def remove_identity(self, name: str) -> Result[bool]:
        return await self.identity.remove_identity(name)

    async def install_extension(self, name: str, extension: str) -> Result[bool]:
        return await self.identity.install_extension(name, extension)

    async def check_extension(self, name: str, extension: str) -> Result[bool]:
        return await self.identity.check_extension(name, extension)

    async def uninstall_extension(self, name: str, extension: str) -> Result[bool]:
        return await self.identity.uninstall_extension(name, extension)

    async def get_publishing_credentials(self, name: str) -> Result[PublishingCredentials]:
        return await self.identity.get_publishing_credentials(name)

    async def close(self) -> None:
        await self.client.close()


def create_portal(
    config: AppServiceConfig,
    logger: Optional[logging.Logger] = None,
    session: Optional[ClientSession] = None,
    credentials: Optional[CredentialProvider] = None,
) -> AppServicePortal:
    """
    Create the portal for the configured operating mode.
    The mode and the credential provider are selected here, once, and never change afterwards.
    """
    lg = logger or log
    if config.mode == OperatingMode.offline_demo:
        from fix_appservice.demo import DemoAppServicePortal

        lg.info("Running in offline demo mode: no request is sent to the control plane")
        return DemoAppServicePortal(config, lg)

    if not config.base_url:
        lg.warning(f"No base url configured for auth type {config.auth_type.value}")
    provider = credentials or create_credential_provider(config, lg)
    client = ArmClient(config.base_url, config.api_version, provider, session, lg)
    return ArmAppServicePortal(config, client, lg)
