import asyncio
import logging
from typing import Optional, Any, Collection, List

from aiohttp import ClientError

from fix_appservice.arm_client import ArmClient, ArmResponse
from fix_appservice.config import AppServiceConfig
from fix_appservice.result import Result, Ok, Err, ErrorKind
from fix_appservice.types import Json, JsonElement

log = logging.getLogger("fix.appservice")

NextPageProps = ["nextLink", "NextPageLink", "@odata.nextLink"]


class ArmService:
    """
    Shared behaviour of all operation services:
    validate the configuration, build the site path, send the request and translate failures into Err.
    """

    def __init__(self, config: AppServiceConfig, client: ArmClient, logger: Optional[logging.Logger] = None) -> None:
        self.config = config
        self.client = client
        self.log = logger or log

    def _missing_configuration(self) -> Optional[Err]:
        if not self.config.subscription_id or not self.config.resource_group:
            self.log.warning("Subscription ID or Resource Group not configured")
            return Err(ErrorKind.configuration_missing, "Subscription ID or Resource Group not configured")
        return None

    def resource_group_path(self) -> str:
        return f"/subscriptions/{self.config.subscription_id}/resourceGroups/{self.config.resource_group}"

    def sites_path(self) -> str:
        return f"{self.resource_group_path()}/providers/Microsoft.Web/sites"

    def site_path(self, name: str, suffix: str = "") -> str:
        path = f"{self.sites_path()}/{name}"
        return f"{path}/{suffix.lstrip('/')}" if suffix else path

    async def _send(
        self,
        method: str,
        path: str,
        body: Optional[JsonElement] = None,
        *,
        api_version: Optional[str] = None,
        accept: Collection[int] = (),
    ) -> Result[ArmResponse]:
        """
        Send a single request. Non success status codes are returned as Err(http),
        unless the status code is part of accept.
        """
        try:
            response = await self.client.send(method, path, body, api_version)
        except (ClientError, asyncio.TimeoutError) as e:
            url = self.client.url(path, api_version)
            self.log.error(f"Request {method} {url} failed: {e!r}")
            return Err(ErrorKind.transport, f"Request failed: {e!r}", method=method, request_url=url)
        if response.success or response.status_code in accept:
            return Ok(response)
        self.log.error(
            f"Request {method} {response.url} failed. Status: {response.status_code}, Response: {response.body}"
        )
        return Err(
            ErrorKind.http,
            f"{method} failed with status code {response.status_code}",
            status_code=response.status_code,
            method=method,
            request_url=response.url,
            response_body=response.body,
        )

    def _parse(self, response: ArmResponse) -> Result[Any]:
        try:
            return Ok(response.json())
        except ValueError as e:
            self.log.warning(f"Can not parse response of {response.method} {response.url}: {e}")
            return Err(
                ErrorKind.parse,
                f"Response is not valid json: {e}",
                status_code=response.status_code,
                method=response.method,
                request_url=response.url,
                response_body=response.body,
            )

    async def _send_json(
        self,
        method: str,
        path: str,
        body: Optional[JsonElement] = None,
        *,
        api_version: Optional[str] = None,
    ) -> Result[Any]:
        result = await self._send(method, path, body, api_version=api_version)
        if isinstance(result, Err):
            return result
        return self._parse(result.value)

    async def _list(self, path: str, *, api_version: Optional[str] = None) -> Result[List[Json]]:
        # walk all pages: the next link is absolute and already carries the api version
        items: List[Json] = []
        next_path: Optional[str] = path
        while next_path:
            result = await self._send_json("GET", next_path, api_version=api_version)
            if isinstance(result, Err):
                return result
            js = result.value if isinstance(result.value, dict) else {}
            items.extend(e for e in js.get("value") or [] if isinstance(e, dict))
            next_path = next((npp for np in NextPageProps if (npp := js.get(np))), None)
        return Ok(items)
