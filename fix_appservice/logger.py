import json
import os
import sys
from logging import basicConfig, getLogger, DEBUG, INFO, WARNING, ERROR, StreamHandler, Formatter, LogRecord
from typing import Optional, Dict, Mapping, Any

from fix_appservice.args import ArgumentParser
from fix_appservice.types import Json

getLogger().setLevel(ERROR)
getLogger("fix").setLevel(INFO)
log = getLogger("fix.appservice")


def add_args(arg_parser: ArgumentParser) -> None:
    group = arg_parser.add_mutually_exclusive_group()
    group.add_argument("--verbose", "-v", help="Verbose logging", dest="verbose", action="store_true", default=False)
    group.add_argument("--quiet", help="Only log errors", dest="quiet", action="store_true", default=False)


class JsonFormatter(Formatter):
    """
    Simple json log formatter: one json object per line.
    """

    def __init__(
        self,
        fmt_dict: Mapping[str, str],
        time_format: str = "%Y-%m-%dT%H:%M:%S",
        static_values: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__()
        self.fmt_dict = fmt_dict
        self.time_format = time_format
        self.static_values = static_values or {}
        self.__use_time = "asctime" in self.fmt_dict.values()

    def usesTime(self) -> bool:  # noqa: N802
        return self.__use_time

    def formatMessage(self, record: LogRecord) -> Any:  # noqa: N802
        return {fmt_key: record.__dict__[fmt_val] for fmt_key, fmt_val in self.fmt_dict.items()}

    def format_json(self, record: LogRecord) -> Json:
        record.message = record.getMessage()
        if self.__use_time:
            record.asctime = self.formatTime(record, self.time_format)

        message_dict: Json = self.formatMessage(record)
        message_dict.update(self.static_values)

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message_dict["exception"] = record.exc_text
        if record.stack_info:
            message_dict["stack_info"] = self.formatStack(record.stack_info)
        return message_dict

    def format(self, record: LogRecord) -> str:
        return json.dumps(self.format_json(record), default=str)


def env_flag(name: str) -> bool:
    return os.environ.get(name, "false").lower() == "true"


def setup_logger(
    proc: str,
    *,
    force: bool = True,
    verbose: bool = False,
    quiet: bool = False,
    level: Optional[str] = None,
    json_format: bool = True,
) -> None:
    # logs go to stderr: stdout is reserved for command output
    if json_format and not env_flag("FIXAPPSERVICE_LOG_TEXT"):
        handler = StreamHandler(sys.stderr)
        formatter = JsonFormatter(
            {
                "timestamp": "asctime",
                "level": "levelname",
                "logger": "name",
                "message": "message",
                "pid": "process",
            },
            static_values={"process": proc},
        )
        handler.setFormatter(formatter)
        basicConfig(handlers=[handler], force=force)
    else:
        log_format = f"%(asctime)s|{proc}|%(levelname)5s|%(process)d  %(message)s"
        log_format = os.environ.get("FIXAPPSERVICE_LOG_FORMAT", log_format)
        basicConfig(format=log_format, datefmt="%y-%m-%d %H:%M:%S", force=force, stream=sys.stderr)
    if level:
        getLogger("fix").setLevel(level)
    elif verbose or env_flag("FIXAPPSERVICE_VERBOSE"):
        getLogger("fix").setLevel(DEBUG)
    elif quiet or env_flag("FIXAPPSERVICE_QUIET"):
        getLogger().setLevel(WARNING)
        getLogger("fix").setLevel(ERROR)
