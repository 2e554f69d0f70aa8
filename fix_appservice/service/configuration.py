from typing import List, Tuple

from fix_appservice.mapper import (
    slot_setting_names,
    environment_variables_from_arm,
    connection_strings_from_arm,
    environment_variables_to_arm,
    connection_strings_to_arm,
)
from fix_appservice.model import EnvironmentVariable, ConnectionStringEntry
from fix_appservice.result import Result, Ok, Err, ErrorKind
from fix_appservice.service.base import ArmService


class ConfigurationService(ArmService):
    """
    App settings (environment variables) and connection strings of a web app.
    Values are retrieved with the list action (POST): a plain GET returns redacted values.
    """

    async def get_environment_variables(self, name: str) -> Result[List[EnvironmentVariable]]:
        if err := self._missing_configuration():
            return err
        result = await self._send_json("POST", self.site_path(name, "config/appsettings/list"))
        if isinstance(result, Err):
            return result
        setting_names, _ = await self.slot_config_names(name)
        variables = environment_variables_from_arm(result.value, setting_names)
        if variables is None:
            return self._unexpected_shape(name, "app settings")
        self.log.info(f"Retrieved {len(variables)} environment variables for {name}")
        return Ok(variables)

    async def get_connection_strings(self, name: str) -> Result[List[ConnectionStringEntry]]:
        if err := self._missing_configuration():
            return err
        result = await self._send_json("POST", self.site_path(name, "config/connectionstrings/list"))
        if isinstance(result, Err):
            return result
        _, connection_string_names = await self.slot_config_names(name)
        entries = connection_strings_from_arm(result.value, connection_string_names)
        if entries is None:
            return self._unexpected_shape(name, "connection strings")
        self.log.info(f"Retrieved {len(entries)} connection strings for {name}")
        return Ok(entries)

    async def save_environment_variables(self, name: str, variables: List[EnvironmentVariable]) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        body = environment_variables_to_arm(variables)
        result = await self._send("PUT", self.site_path(name, "config/appsettings"), body)
        if isinstance(result, Err):
            return result
        self.log.info(f"Successfully saved {len(variables)} app settings for {name}")
        return Ok(True)

    async def save_connection_strings(self, name: str, entries: List[ConnectionStringEntry]) -> Result[bool]:
        if err := self._missing_configuration():
            return err
        body = connection_strings_to_arm(entries)
        result = await self._send("PUT", self.site_path(name, "config/connectionstrings"), body)
        if isinstance(result, Err):
            return result
        self.log.info(f"Successfully saved {len(entries)} connection strings for {name}")
        return Ok(True)

    async def slot_config_names(self, name: str) -> Tuple[List[str], List[str]]:
        """
        Names of the settings that stick to the deployment slot: (app setting names, connection string names).
        The lookup is best effort: a failure yields empty lists.
        """
        result = await self._send_json("GET", self.site_path(name, "config/slotConfigNames"))
        if isinstance(result, Err):
            self.log.info(f"Slot config names of {name} not available: {result.message}")
            return [], []
        return slot_setting_names(result.value)

    def _unexpected_shape(self, name: str, what: str) -> Err:
        self.log.warning(f"Can not read the {what} of {name}: unexpected response")
        return Err(ErrorKind.parse, f"Unexpected shape of the {what} of {name}", method="POST")
