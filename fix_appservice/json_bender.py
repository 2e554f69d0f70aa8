from __future__ import annotations

import logging
from abc import ABC
from typing import Dict, Any, Union, Optional, Callable, List

from fix_appservice.types import Json

log = logging.getLogger("fix.appservice")


# General idea and basic implementation is taken from: https://github.com/Onyo/jsonbender
class Bender(ABC):
    """
    Base bending class.
    A bender takes a json element and returns a transformed value.
    Benders can be chained with `>>`: the output of the left side is the input of the right side.
    """

    def __call__(self, source: Any) -> Any:
        return self.execute(source)

    def execute(self, source: Any) -> Any:
        return source

    def or_else(self, other: Bender) -> Bender:
        return OrElse(self, other)

    def __rshift__(self, other: Bender) -> Bender:
        return Compose(self, other)


class BendingError(Exception):
    pass


Mapping = Union[Bender, Dict[str, Any], List[Any]]


class S(Bender):
    """
    Retrieve a value from a JSON object under given path.
    """

    def __init__(self, *path: Union[str, int], default: Optional[Any] = None):
        if not path:
            raise ValueError("No path given")
        self._path = path
        self._default = default

    def execute(self, source: Any) -> Any:
        try:
            for key in self._path:
                source = source[key]
            return self._default if source is None else source
        except (KeyError, TypeError, IndexError):
            return self._default


class K(Bender):
    """
    Selects a constant value.
    """

    def __init__(self, value: Any):
        self._val = value

    def execute(self, source: Any) -> Any:
        return self._val


class F(Bender):
    """
    Lifts a python callable into a Bender, so it can be composed.
    The extra positional and named parameters are passed to the function at
    bending time after the given value.
    """

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any):
        self._func = func
        self._args = args
        self._kwargs = kwargs

    def execute(self, value: Any) -> Any:
        return self._func(value, *self._args, **self._kwargs)


class OrElse(Bender):
    def __init__(self, source_bender: Bender, else_bender: Bender):
        self.source_bender = source_bender
        self.else_bender = else_bender

    def execute(self, source: Any) -> Any:
        first = self.source_bender(source)
        return first if first is not None else self.else_bender(source)


class Compose(Bender):
    """
    Compose two benders.
    Use `>>` instead of calling `Compose` directly.
    The second bender is only called, if the first one yields a value.
    """

    def __init__(self, first: Bender, second: Bender):
        self._first = first
        self._second = second

    def execute(self, source: Any) -> Any:
        first = self._first(source)
        return self._second(first) if first is not None else None


class MapDict(Bender):
    """
    Transform keys and/or values of a dictionary.
    A list of name/value pairs is accepted as well (ARM uses both shapes).
    """

    def __init__(self, key_bender: Optional[Bender] = None, value_bender: Optional[Bender] = None):
        self._key_bender = key_bender or Bender()
        self._value_bender = value_bender or Bender()

    def execute(self, value: Any) -> Any:
        if isinstance(value, list):
            value = {e.get("name"): e.get("value") for e in value if isinstance(e, dict) and e.get("name")}
        if not isinstance(value, dict):
            return None
        return {self._key_bender(k): self._value_bender(v) for k, v in value.items()}


class EmptyToNoneBender(Bender):
    def execute(self, source: Any) -> Any:
        return None if source in (None, "", [], {}) else source


EmptyToNone = EmptyToNoneBender()


def bend(mapping: Mapping, source: Any) -> Any:
    """
    The main bending function.

    mapping: the map of benders
    source: a dict to be bent

    returns a new dict according to the provided map.
    """
    if isinstance(mapping, list):
        return [bend(v, source) for v in mapping]
    elif isinstance(mapping, dict):
        res = {}
        for k, v in mapping.items():
            try:
                res[k] = bend(v, source)
            except Exception as e:
                log.debug(f"Bending of key {k} failed", exc_info=e)
                raise BendingError(f"Error for key {k}: {e}") from e
        return res
    elif isinstance(mapping, Bender):
        return mapping(source)
    else:
        return mapping
