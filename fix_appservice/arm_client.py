from __future__ import annotations

import json
import logging
from typing import Optional, Any, Dict

from aiohttp import ClientSession
from attr import frozen

from fix_appservice.credentials import CredentialProvider
from fix_appservice.types import JsonElement

log = logging.getLogger("fix.appservice")


def with_api_version(path: str, api_version: str) -> str:
    """
    Append the api-version query parameter to the given path.
    """
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}api-version={api_version}"


@frozen
class ArmResponse:
    method: str
    url: str
    status_code: int
    body: str

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """
        Parse the body as json. An empty body yields None.
        Raises ValueError if the body is not valid json.
        """
        return json.loads(self.body) if self.body.strip() else None


class ArmClient:
    """
    Issues HTTP calls against the ARM (or a private) control plane.
    Every call is attempted exactly once: there is no retry and no backoff.
    A non success status code is returned to the caller, who decides how to interpret it.
    Transport errors (aiohttp.ClientError) and credential errors are raised.
    """

    def __init__(
        self,
        base_url: str,
        api_version: str,
        credentials: CredentialProvider,
        session: Optional[ClientSession] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.credentials = credentials
        self.log = logger or log
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(headers={"Accept": "application/json"})
            self._owns_session = True
        return self._session

    def url(self, path: str, api_version: Optional[str] = None) -> str:
        # absolute urls (e.g. nextLink) already carry the api-version
        if path.startswith("http://") or path.startswith("https://"):
            return path if "api-version=" in path else with_api_version(path, api_version or self.api_version)
        path = path if path.startswith("/") else "/" + path
        return self.base_url + with_api_version(path, api_version or self.api_version)

    async def send(
        self,
        method: str,
        path: str,
        body: Optional[JsonElement] = None,
        api_version: Optional[str] = None,
    ) -> ArmResponse:
        url = self.url(path, api_version)
        headers: Dict[str, str] = {"Accept": "application/json"}
        if auth := await self.credentials.authorization_header():
            headers["Authorization"] = auth
        self.log.debug(f"{method} {url}")
        async with self.session.request(
            method, url, json=body, headers=headers, ssl=self.credentials.ssl_context()
        ) as response:
            # bodies that are not valid in the announced charset are kept readable
            text = await response.text(errors="replace")
            self.log.debug(f"{method} {url} -> {response.status}")
            return ArmResponse(method, url, response.status, text)

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
        await self.credentials.close()

    async def __aenter__(self) -> ArmClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
