import asyncio
import sys
from argparse import Namespace
from typing import List, Optional, Any, Callable, Awaitable, Dict

from azure.core.exceptions import ClientAuthenticationError

from fix_appservice.args import ArgumentParser, get_arg_parser
from fix_appservice.config import load_config, AuthType, OperatingMode, AppServiceConfig
from fix_appservice.json import to_json_str
from fix_appservice.logger import log, setup_logger, add_args as logging_add_args
from fix_appservice.model import EnvironmentVariable
from fix_appservice.portal import AppServicePortal, create_portal
from fix_appservice.result import Result, Ok, Err


def add_args(arg_parser: ArgumentParser) -> None:
    arg_parser.add_argument("--config", help="Path to the YAML configuration file.", dest="config", default=None)
    arg_parser.add_argument(
        "--subscription-id", help="Subscription that holds the web apps.", dest="subscription_id", default=None
    )
    arg_parser.add_argument(
        "--resource-group", help="Resource group that holds the web apps.", dest="resource_group", default=None
    )
    arg_parser.add_argument(
        "--auth-type",
        help="Authentication mode: arm, private, certificate or none.",
        dest="auth_type",
        type=lambda s: AuthType(s.lower()),
        default=None,
    )
    arg_parser.add_argument(
        "--mode",
        help="Operating mode: live or offline_demo.",
        dest="mode",
        type=lambda s: OperatingMode(s.lower()),
        default=None,
    )


def add_commands(arg_parser: ArgumentParser) -> None:
    commands = arg_parser.add_subparsers(dest="command", required=True)
    commands.add_parser("list", help="List all web apps of the resource group.")
    for name, help_text in [
        ("show", "Show a web app."),
        ("plan", "Show the app service plan of a web app."),
        ("start", "Start a web app."),
        ("stop", "Stop a web app."),
        ("restart", "Restart a web app."),
        ("delete", "Delete a web app."),
        ("connection-strings", "List the connection strings of a web app."),
        ("metrics", "Show the latest metrics of a web app."),
        ("credentials", "Show the publishing credentials of a web app."),
    ]:
        commands.add_parser(name, help=help_text).add_argument("name", help="Name of the web app.")

    settings = commands.add_parser("settings", help="List or change the app settings of a web app.")
    settings.add_argument("name", help="Name of the web app.")
    settings.add_argument("--set", dest="set", nargs="+", default=[], metavar="KEY=VALUE", help="Add or change.")
    settings.add_argument("--remove", dest="remove", nargs="+", default=[], metavar="KEY", help="Remove settings.")

    identity = commands.add_parser("identity", help="Assign or remove the configured managed identity.")
    identity.add_argument("action", choices=["assign", "remove"])
    identity.add_argument("name", help="Name of the web app.")

    extension = commands.add_parser("extension", help="Install, check or uninstall a site extension.")
    extension.add_argument("action", choices=["install", "check", "uninstall"])
    extension.add_argument("name", help="Name of the web app.")
    extension.add_argument("extension", help="Named extension (e.g. application_insights) or extension id.")


def parse_args(argv: Optional[List[str]] = None) -> Namespace:
    arg_parser = get_arg_parser(description="Manage Azure App Service web apps")
    add_args(arg_parser)
    logging_add_args(arg_parser)
    add_commands(arg_parser)
    return arg_parser.parse_args(argv)


def configure(args: Namespace) -> AppServiceConfig:
    return load_config(args.config).with_overrides(
        subscription_id=args.subscription_id,
        resource_group=args.resource_group,
        auth_type=args.auth_type,
        mode=args.mode,
    )


def setting_changes(current: List[EnvironmentVariable], to_set: List[str], to_remove: List[str]) -> List[str]:
    """
    Apply KEY=VALUE and KEY changes to the current settings in place and return the names of the changed settings.
    """
    changed = []
    for definition in to_set:
        if "=" not in definition:
            raise ValueError(f"Setting must be in the format KEY=VALUE: {definition}")
        key, value = definition.split("=", 1)
        current[:] = [v for v in current if v.name != key] + [EnvironmentVariable.of(key, value)]
        changed.append(key)
    for key in to_remove:
        current[:] = [v for v in current if v.name != key]
        changed.append(key)
    current.sort(key=lambda v: v.name)
    return changed


async def settings_command(portal: AppServicePortal, args: Namespace) -> Result[Any]:
    current = await portal.get_environment_variables(args.name)
    if isinstance(current, Err) or not (args.set or args.remove):
        return current
    variables = current.value
    changed = setting_changes(variables, args.set, args.remove)
    log.info(f"Changing settings {', '.join(changed)} of web app {args.name}")
    saved = await portal.save_environment_variables(args.name, variables)
    return saved if isinstance(saved, Err) else Ok(variables)


async def execute(portal: AppServicePortal, args: Namespace) -> Result[Any]:
    by_name: Dict[str, Callable[[str], Awaitable[Result[Any]]]] = {
        "show": portal.get_web_app,
        "plan": portal.get_app_service_plan,
        "start": portal.start_web_app,
        "stop": portal.stop_web_app,
        "restart": portal.restart_web_app,
        "delete": portal.delete_web_app,
        "connection-strings": portal.get_connection_strings,
        "metrics": portal.get_metrics,
        "credentials": portal.get_publishing_credentials,
    }
    if args.command == "list":
        return await portal.list_web_apps()
    elif args.command == "settings":
        return await settings_command(portal, args)
    elif args.command == "identity":
        fn = portal.assign_identity if args.action == "assign" else portal.remove_identity
        return await fn(args.name)
    elif args.command == "extension":
        extension_fns = {
            "install": portal.install_extension,
            "check": portal.check_extension,
            "uninstall": portal.uninstall_extension,
        }
        return await extension_fns[args.action](args.name, args.extension)
    else:
        return await by_name[args.command](args.name)


async def main_async(args: Namespace) -> int:
    config = configure(args)
    async with create_portal(config) as portal:
        result = await execute(portal, args)
    if isinstance(result, Err):
        print(to_json_str(result, strip_nulls=True, indent=2), file=sys.stderr)
        return 1
    print(to_json_str(result.value, indent=2))
    return 0


def main() -> None:
    args = parse_args()
    setup_logger("fix-appservice", verbose=args.verbose, quiet=args.quiet)
    try:
        exit_code = asyncio.run(main_async(args))
    except ClientAuthenticationError:
        # already logged by the credential provider
        exit_code = 1
    except ValueError as e:
        log.error(str(e))
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
