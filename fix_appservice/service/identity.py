from typing import Optional

from attr import evolve

from fix_appservice.json_bender import S
from fix_appservice.model import PublishingCredentials, ScmHostMarker
from fix_appservice.publish_profile import parse_publish_profile
from fix_appservice.result import Result, Ok, Err, ErrorKind
from fix_appservice.service.base import ArmService


class IdentityService(ArmService):
    """
    Managed identity assignment, site extension lifecycle and publishing credentials of a web app.
    """

    async def assign_identity(self, name: str) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        identity_id = self.config.user_assigned_identity_resource_id
        if not identity_id:
            self.log.warning("User assigned identity resource id is not configured")
            return Err(ErrorKind.configuration_missing, "User assigned identity resource id is not configured")
        body = {"identity": {"type": "UserAssigned", "userAssignedIdentities": {identity_id: {}}}}
        self.log.info(f"Assigning identity {identity_id} to web app {name}")
        result = await self._send("PATCH", self.site_path(name), body)
        return result if isinstance(result, Err) else Ok(True)

    async def remove_identity(self, name: str) -> Result[bool]:
        if not self.config.user_assigned_identity_resource_id:
            self.log.info(f"No identity configured: nothing to remove from web app {name}")
            return Ok(True)
        if err := self._missing_configuration():
            return err
        self.log.info(f"Removing identity from web app {name}")
        result = await self._send("PATCH", self.site_path(name), {"identity": {"type": "None"}})
        return result if isinstance(result, Err) else Ok(True)

    def extension_id(self, extension: str) -> str:
        """
        Resolve a named extension (e.g. application_insights) to its gallery id.
        Unknown names are used as extension id directly.
        """
        return self.config.site_extensions.get(extension, extension)

    def extension_path(self, name: str, extension: str) -> str:
        return self.site_path(name, f"siteextensions/{self.extension_id(extension)}")

    async def install_extension(self, name: str, extension: str) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        self.log.info(f"Installing site extension {self.extension_id(extension)} on web app {name}")
        result = await self._send(
            "PUT", self.extension_path(name, extension), {}, api_version=self.config.site_extension_api_version
        )
        return result if isinstance(result, Err) else Ok(True)

    async def check_extension(self, name: str, extension: str) -> Result[bool]:
        """
        Ok(True) if the extension is installed, Ok(False) if the control plane does not know it.
        """
        if err := self._missing_configuration():
            return err
        result = await self._send(
            "GET",
            self.extension_path(name, extension),
            api_version=self.config.site_extension_api_version,
            accept=(404,),
        )
        if isinstance(result, Err):
            return result
        return Ok(result.value.status_code != 404)

    async def uninstall_extension(self, name: str, extension: str) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        result = await self._send(
            "DELETE",
            self.extension_path(name, extension),
            api_version=self.config.site_extension_api_version,
            accept=(404,),
        )
        if isinstance(result, Err):
            return result
        if result.value.status_code == 404:
            self.log.info(f"Site extension {self.extension_id(extension)} is not installed on web app {name}")
        return Ok(True)

    async def get_publishing_credentials(self, name: str) -> Result[PublishingCredentials]:
        """
        Credentials of the MSDeploy publish profile.
        If the profile does not reveal the SCM endpoint, the enabled host names of the site are searched.
        """
        if err := self._missing_configuration():
            return err
        result = await self._send("POST", self.site_path(name, "publishxml"), {"format": "WebDeploy"})
        if isinstance(result, Err):
            return result
        credentials = parse_publish_profile(result.value.body, self.log)
        if credentials is None:
            return Err(
                ErrorKind.parse,
                f"No usable publish profile for web app {name}",
                status_code=result.value.status_code,
                method=result.value.method,
                request_url=result.value.url,
            )
        if credentials.scm_url is None:
            credentials = evolve(credentials, scm_url=await self.scm_url_from_host_names(name))
        return Ok(credentials)

    async def scm_url_from_host_names(self, name: str) -> Optional[str]:
        result = await self._send_json("GET", self.site_path(name))
        if isinstance(result, Err):
            return None
        host_names = S("properties", "enabledHostNames")(result.value)
        if not isinstance(host_names, list):
            host_names = []
        host = next((h for h in host_names if isinstance(h, str) and ScmHostMarker in h), None)
        if host is None:
            self.log.warning(f"Web app {name} has no SCM host name")
            return None
        return f"https://{host}"
