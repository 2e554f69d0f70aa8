import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TypeVar, Any, Type, Callable, Optional

import attrs
import cattrs
from cattrs import override
from cattrs.gen import make_dict_unstructure_fn
from dateutil.parser import isoparse

from fix_appservice.types import Json, JsonElement

log = logging.getLogger("fix.appservice")

AnyT = TypeVar("AnyT")

# the global converter instance
__converter = cattrs.Converter()

# ignore all private attributes
__converter.register_unstructure_hook_factory(
    attrs.has,
    lambda cls: make_dict_unstructure_fn(
        cls,
        __converter,
        _cattrs_omit_if_default=False,
        **{a.name: override(omit=True) for a in attrs.fields(cls) if a.name.startswith("_")},
    ),
)


def utc_str(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def register_json(
    cls: Type[AnyT],
    to_json_fn: Optional[Callable[[AnyT], JsonElement]] = None,
    from_json_fn: Optional[Callable[[Any], AnyT]] = None,
) -> None:
    """
    Register a json marshaller/unmarshaller for the given class.
    :param cls: the class to register
    :param to_json_fn: the function to convert the class to json
    :param from_json_fn: the function to convert json to the class
    """
    if from_json_fn is not None:
        __converter.register_structure_hook(cls, lambda obj, _: from_json_fn(obj))
    if to_json_fn is not None:
        __converter.register_unstructure_hook(cls, to_json_fn)


def _enum_from_json(obj: Any, clazz: Type[Enum]) -> Enum:
    # enum values are accepted case-insensitive: "ARM", "Arm" and "arm" are the same
    if isinstance(obj, str):
        for member in clazz:
            if isinstance(member.value, str) and member.value.lower() == obj.lower():
                return member
    return clazz(obj)


register_json(datetime, utc_str, isoparse)
__converter.register_structure_hook_factory(
    lambda t: isinstance(t, type) and issubclass(t, Enum), lambda clazz: lambda obj, _: _enum_from_json(obj, clazz)
)


def to_json(node: Any, strip_nulls: bool = False) -> Json:
    """
    Use this method, if the given node is known as complex object,
    so the result will be a json object.
    """

    def strip(js: Any) -> Any:
        if isinstance(js, dict):
            return {k: strip(v) for k, v in js.items() if v is not None}
        elif isinstance(js, list):
            return [strip(e) for e in js]
        return js

    unstructured: Json = __converter.unstructure(node)
    return strip(unstructured) if strip_nulls else unstructured


def to_json_str(node: Any, strip_nulls: bool = False, indent: Optional[int] = None) -> str:
    return json.dumps(to_json(node, strip_nulls), indent=indent)


def from_json(js: JsonElement, clazz: Type[AnyT]) -> AnyT:
    """
    Loads a json object into a python object.
    :param js: the json object to load.
    :param clazz: the type of the python object.
    :return: the loaded python object.
    """
    try:
        return __converter.structure(js, clazz)
    except Exception as e:
        log.debug(f"Can not deserialize json into class {clazz.__name__}: {js}. Error: {e}")
        raise

