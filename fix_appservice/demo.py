import logging
import random
from datetime import timedelta
from typing import Optional, List, Dict, Set
from uuid import uuid4

from attr import evolve

from fix_appservice.config import AppServiceConfig
from fix_appservice.model import (
    WebApp,
    WebAppStatus,
    AppServicePlan,
    PricingTier,
    EnvironmentVariable,
    ConnectionStringEntry,
    PublishingCredentials,
    ScmHostMarker,
    utc,
)
from fix_appservice.portal import AppServicePortal
from fix_appservice.result import Result, Ok, Err, ErrorKind

log = logging.getLogger("fix.appservice")


def demo_web_apps() -> List[WebApp]:
    now = utc()
    return [
        WebApp(
            id="webapp-001",
            name="my-production-app",
            resource_group="production-rg",
            location="East US",
            status=WebAppStatus.running,
            url="https://my-production-app.azurewebsites.net",
            runtime=".NET 8.0",
            app_service_plan=AppServicePlan(
                id="asp-001",
                name="production-asp",
                tier="Premium",
                size="P1v2",
                location="East US",
                pricing_tier=PricingTier(name="PremiumV2", sku="P1v2", cores=1, ram_gb=3.5, storage_gb=250),
            ),
            created_date=now - timedelta(days=180),
            last_modified_date=now - timedelta(days=2),
            always_on=True,
            https_only=True,
            enabled_host_names=["my-production-app.azurewebsites.net", "my-production-app.scm.azurewebsites.net"],
            app_settings={
                "ASPNETCORE_ENVIRONMENT": "Production",
                "Database__Password": "@Microsoft.KeyVault(SecretUri=https://prod-kv.vault.azure.net/secrets/db-pwd)",
            },
            connection_strings={"DefaultConnection": "Server=tcp:prod-sql.database.windows.net;Database=app"},
            application_insights_enabled=True,
            current_instances=2,
        ),
        WebApp(
            id="webapp-002",
            name="staging-api",
            resource_group="staging-rg",
            location="West US",
            status=WebAppStatus.running,
            url="https://staging-api.azurewebsites.net",
            runtime=".NET 8.0",
            app_service_plan=AppServicePlan(
                id="asp-002", name="staging-asp", tier="Standard", size="S1", location="West US"
            ),
            created_date=now - timedelta(days=90),
            last_modified_date=now - timedelta(hours=5),
            always_on=True,
            https_only=True,
            enabled_host_names=["staging-api.azurewebsites.net", "staging-api.scm.azurewebsites.net"],
            app_settings={"ASPNETCORE_ENVIRONMENT": "Staging"},
            current_instances=1,
        ),
        WebApp(
            id="webapp-003",
            name="dev-test-app",
            resource_group="development-rg",
            location="Central US",
            status=WebAppStatus.stopped,
            url="https://dev-test-app.azurewebsites.net",
            runtime=".NET 8.0",
            app_service_plan=AppServicePlan(
                id="asp-003", name="dev-asp", tier="Basic", size="B1", location="Central US"
            ),
            created_date=now - timedelta(days=30),
            last_modified_date=now - timedelta(days=10),
            always_on=False,
            https_only=True,
            enabled_host_names=["dev-test-app.azurewebsites.net", "dev-test-app.scm.azurewebsites.net"],
            current_instances=1,
        ),
    ]


class DemoAppServicePortal(AppServicePortal):
    """
    Offline demo mode: all operations work on an in-memory store, nothing is sent to the control plane.
    Web apps can be addressed by id or by name.
    """

    def __init__(
        self,
        config: AppServiceConfig,
        logger: Optional[logging.Logger] = None,
        web_apps: Optional[List[WebApp]] = None,
    ) -> None:
        self.config = config
        self.log = logger or log
        self.apps: List[WebApp] = demo_web_apps() if web_apps is None else list(web_apps)
        self.extensions: Dict[str, Set[str]] = {}
        self.identities: Dict[str, str] = {}

    def _find(self, name: str) -> Optional[WebApp]:
        return next((a for a in self.apps if a.id == name or a.name == name), None)

    def _not_found(self, name: str) -> Err:
        self.log.warning(f"Web app {name} not found")
        return Err(ErrorKind.http, f"Web app {name} not found", status_code=404)

    async def list_web_apps(self) -> Result[List[WebApp]]:
        return Ok(list(self.apps))

    async def get_web_app(self, name: str) -> Result[WebApp]:
        app = self._find(name)
        return Ok(app) if app else self._not_found(name)

    async def create_web_app(self, app: WebApp, server_farm_id: Optional[str] = None) -> Result[WebApp]:
        if self._find(app.name):
            return Err(ErrorKind.http, f"Web app {app.name} already exists", status_code=409)
        now = utc()
        created = evolve(app, id=app.id or f"webapp-{uuid4().hex[:8]}", created_date=now, last_modified_date=now)
        self.apps.append(created)
        self.log.info(f"Created demo web app {created.name}")
        return Ok(created)

    async def update_web_app(self, app: WebApp) -> Result[WebApp]:
        existing = self._find(app.id) or self._find(app.name)
        if existing is None:
            return self._not_found(app.name)
        updated = evolve(app, id=existing.id, last_modified_date=utc())
        self.apps[self.apps.index(existing)] = updated
        return Ok(updated)

    async def delete_web_app(self, name: str) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        self.apps.remove(app)
        return Ok(True)

    def __set_status(self, name: str, status: Optional[str]) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        if status is not None:
            app.status = status
        app.last_modified_date = utc()
        return Ok(True)

    async def start_web_app(self, name: str) -> Result[bool]:
        return self.__set_status(name, WebAppStatus.running)

    async def stop_web_app(self, name: str) -> Result[bool]:
        return self.__set_status(name, WebAppStatus.stopped)

    async def restart_web_app(self, name: str) -> Result[bool]:
        return self.__set_status(name, None)

    async def get_metrics(self, name: str) -> Result[Dict[str, float]]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        # stable values per app
        rnd = random.Random(app.id)  # nosec
        return Ok(
            {
                "CPU": rnd.random() * 100,
                "Memory": rnd.random() * 100,
                "Requests": float(rnd.randint(1000, 10000)),
                "ResponseTime": rnd.random() * 1000,
            }
        )

    async def get_app_service_plan(self, name: str) -> Result[AppServicePlan]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        if app.app_service_plan is None:
            return Err(ErrorKind.parse, f"Web app {name} does not reference an app service plan")
        return Ok(app.app_service_plan)

    async def get_environment_variables(self, name: str) -> Result[List[EnvironmentVariable]]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        variables = [EnvironmentVariable.of(k, v) for k, v in app.app_settings.items()]
        return Ok(sorted(variables, key=lambda e: e.name))

    async def save_environment_variables(self, name: str, variables: List[EnvironmentVariable]) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        app.app_settings = {v.name: v.value for v in variables}
        app.last_modified_date = utc()
        self.log.info(f"Saved {len(variables)} app settings to demo web app {name}")
        return Ok(True)

    async def get_connection_strings(self, name: str) -> Result[List[ConnectionStringEntry]]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        entries = [ConnectionStringEntry(name=k, value=v) for k, v in app.connection_strings.items()]
        return Ok(sorted(entries, key=lambda c: c.name))

    async def save_connection_strings(self, name: str, entries: List[ConnectionStringEntry]) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        app.connection_strings = {c.name: c.value for c in entries}
        app.last_modified_date = utc()
        self.log.info(f"Saved {len(entries)} connection strings to demo web app {name}")
        return Ok(True)

    async def assign_identity(self, name: str) -> Result[bool]:
        identity_id = self.config.user_assigned_identity_resource_id
        if not identity_id:
            self.log.warning("User assigned identity resource id is not configured")
            return Err(ErrorKind.configuration_missing, "User assigned identity resource id is not configured")
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        self.identities[app.id] = identity_id
        return Ok(True)

    async def remove_identity(self, name: str) -> Result[bool]:
        app = self._find(name)
        if app is not None:
            self.identities.pop(app.id, None)
        return Ok(True)

    def _extension_id(self, extension: str) -> str:
        return self.config.site_extensions.get(extension, extension)

    async def install_extension(self, name: str, extension: str) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        self.extensions.setdefault(app.id, set()).add(self._extension_id(extension))
        return Ok(True)

    async def check_extension(self, name: str, extension: str) -> Result[bool]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        return Ok(self._extension_id(extension) in self.extensions.get(app.id, set()))

    async def uninstall_extension(self, name: str, extension: str) -> Result[bool]:
        app = self._find(name)
        if app is not None:
            self.extensions.get(app.id, set()).discard(self._extension_id(extension))
        return Ok(True)

    async def get_publishing_credentials(self, name: str) -> Result[PublishingCredentials]:
        app = self._find(name)
        if app is None:
            return self._not_found(name)
        scm_host = next((h for h in app.enabled_host_names if ScmHostMarker in h), None)
        return Ok(
            PublishingCredentials(
                user_name=f"${app.name}",
                password=f"demo-{app.id}",
                scm_url=f"https://{scm_host}" if scm_host else None,
            )
        )
