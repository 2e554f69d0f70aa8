import argparse
import os
from typing import Any, Union, Callable, Optional, Sequence, Tuple, List

DEFAULT_ENV_ARGS_PREFIX = "FIXAPPSERVICE_"

# removed from types in 3.0-3.9: introduced again in 3.10
NoneType = type(None)


class ArgumentParser(argparse.ArgumentParser):
    """
    Every long option can be defined via environment variable as well:
    --resource-group -> FIXAPPSERVICE_RESOURCE_GROUP
    Values from the environment become the default, an explicit command line argument always wins.
    """

    def __init__(self, *args: Any, env_args_prefix: str = DEFAULT_ENV_ARGS_PREFIX, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.env_args_prefix = env_args_prefix

    def env_name(self, action: argparse.Action) -> Optional[str]:
        for option_string in action.option_strings:
            if option_string.startswith("--"):
                return self.env_args_prefix + option_string[2:].replace("-", "_").upper()
        return None

    def parse_known_args(  # type: ignore
        self, args: Optional[Sequence[str]] = None, namespace: Optional[argparse.Namespace] = None
    ) -> Tuple[argparse.Namespace, List[str]]:
        for action in self._actions:
            env_name = self.env_name(action)
            if env_name is None or action.default == argparse.SUPPRESS:
                continue
            if (value := os.environ.get(env_name)) is not None:
                if action.nargs not in (0, None):
                    action.default = [convert(v, type_goal(action)) for v in value.split(" ")]
                else:
                    action.default = convert(value, type_goal(action))
        return super().parse_known_args(args=args, namespace=namespace)


def type_goal(action: argparse.Action) -> Union[type, Callable[[str], Any]]:
    if action.type is not None and callable(action.type):
        return action.type  # type: ignore
    return type(action.default)


def convert(value: Any, goal: Union[type, Callable[[str], Any]]) -> Any:
    if goal is NoneType:
        return value
    elif isinstance(goal, type):
        try:
            if goal in (str, int, float):
                return goal(value)
            elif goal is bool:
                return value.lower() in ("true", "1", "yes")
            else:
                # don't know how to handle this type
                return value
        except ValueError:
            # can not convert value
            return value
    else:
        return goal(value)


def get_arg_parser(
    add_help: bool = True,
    description: str = "fix-appservice",
    env_args_prefix: str = DEFAULT_ENV_ARGS_PREFIX,
) -> ArgumentParser:
    return ArgumentParser(description=description, add_help=add_help, env_args_prefix=env_args_prefix)
