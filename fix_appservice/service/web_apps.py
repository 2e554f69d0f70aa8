from typing import Optional, List, Dict

from fix_appservice.mapper import (
    web_app_from_arm,
    web_apps_from_arm,
    web_app_to_arm,
    app_service_plan_from_arm,
    metrics_from_arm,
    SiteMetrics,
)
from fix_appservice.model import WebApp, AppServicePlan
from fix_appservice.result import Result, Ok, Err, ErrorKind
from fix_appservice.service.base import ArmService
from fix_appservice.types import Json


class WebAppService(ArmService):
    """
    Lifecycle of web apps: list, get, create, update, delete, start, stop and restart.
    Web apps are addressed by their site name within the configured resource group.
    """

    async def list_web_apps(self) -> Result[List[WebApp]]:
        if err := self._missing_configuration():
            return err
        result = await self._list(self.sites_path())
        if isinstance(result, Err):
            return result
        apps = web_apps_from_arm(result.value)
        self.log.info(f"Retrieved {len(apps)} web apps from resource group {self.config.resource_group}")
        return Ok(apps)

    async def get_web_app(self, name: str) -> Result[WebApp]:
        if err := self._missing_configuration():
            return err
        result = await self._send_json("GET", self.site_path(name))
        if isinstance(result, Err):
            return result
        return self.__web_app_of(result.value, name)

    async def create_web_app(self, app: WebApp, server_farm_id: Optional[str] = None) -> Result[WebApp]:
        if err := self._missing_configuration():
            return err
        farm_id = server_farm_id or (app.app_service_plan.id if app.app_service_plan else None)
        self.log.info(f"Creating web app {app.name}")
        result = await self._send_json("PUT", self.site_path(app.name), web_app_to_arm(app, farm_id))
        if isinstance(result, Err):
            return result
        # creation is accepted asynchronously in some cases: no body is returned
        return self.__web_app_of(result.value, app.name) if result.value else Ok(app)

    async def update_web_app(self, app: WebApp) -> Result[WebApp]:
        if err := self._missing_configuration():
            return err
        farm_id = app.app_service_plan.id if app.app_service_plan else None
        self.log.info(f"Updating web app {app.name}")
        result = await self._send_json("PATCH", self.site_path(app.name), web_app_to_arm(app, farm_id))
        if isinstance(result, Err):
            return result
        return self.__web_app_of(result.value, app.name) if result.value else Ok(app)

    async def delete_web_app(self, name: str) -> Result[bool]:
        # a missing site is reported as is: there is no idempotency check for sites
        return await self.__action("DELETE", name, "")

    async def start_web_app(self, name: str) -> Result[bool]:
        return await self.__action("POST", name, "start")

    async def stop_web_app(self, name: str) -> Result[bool]:
        return await self.__action("POST", name, "stop")

    async def restart_web_app(self, name: str) -> Result[bool]:
        return await self.__action("POST", name, "restart")

    async def get_metrics(self, name: str) -> Result[Dict[str, float]]:
        """
        Latest value of CPU time, memory working set, requests and response time from Azure Monitor.
        """
        if err := self._missing_configuration():
            return err
        names = ",".join(SiteMetrics)
        query = f"metricnames={names}&aggregation=Total,Average"
        path = self.site_path(name, f"providers/Microsoft.Insights/metrics?{query}")
        result = await self._send_json("GET", path, api_version=self.config.metrics_api_version)
        if isinstance(result, Err):
            return result
        return Ok(metrics_from_arm(result.value))

    async def get_app_service_plan(self, name: str) -> Result[AppServicePlan]:
        """
        The plan that hosts the web app, resolved by the serverFarmId of the site.
        """
        app = await self.get_web_app(name)
        if isinstance(app, Err):
            return app
        plan_ref = app.value.app_service_plan
        if plan_ref is None or not plan_ref.id:
            self.log.warning(f"Web app {name} does not reference an app service plan")
            return Err(ErrorKind.parse, f"Web app {name} does not reference an app service plan")
        result = await self._send_json("GET", plan_ref.id)
        if isinstance(result, Err):
            return result
        if plan := app_service_plan_from_arm(result.value or {}):
            return Ok(plan)
        return Err(ErrorKind.parse, f"Can not map app service plan {plan_ref.id}")

    async def __action(self, method: str, name: str, action: str) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        verb = action or method.lower()
        self.log.info(f"Web app {name}: {verb}")
        result = await self._send(method, self.site_path(name, action))
        if isinstance(result, Err):
            return result
        return Ok(True)

    def __web_app_of(self, js: Optional[Json], name: str) -> Result[WebApp]:
        if isinstance(js, dict) and (app := web_app_from_arm(js)):
            return Ok(app)
        self.log.warning(f"Web app {name}: response can not be mapped")
        return Err(ErrorKind.parse, f"Response for web app {name} can not be mapped")
