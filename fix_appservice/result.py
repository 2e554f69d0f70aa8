from enum import Enum
from typing import Generic, TypeVar, Union, Optional, Any

from attr import frozen, field

T = TypeVar("T")


class ErrorKind(Enum):
    configuration_missing = "configuration_missing"
    http = "http"
    transport = "transport"
    parse = "parse"


@frozen
class Ok(Generic[T]):
    value: T

    @property
    def success(self) -> bool:
        return True

    def value_or(self, default: Any) -> T:
        return self.value


@frozen
class Err:
    """
    Failed operation.
    Status code, request url, method and response body are only available for failures of the control plane.
    """

    kind: ErrorKind
    message: str
    status_code: Optional[int] = field(default=None, kw_only=True)
    method: Optional[str] = field(default=None, kw_only=True)
    request_url: Optional[str] = field(default=None, kw_only=True)
    response_body: Optional[str] = field(default=None, kw_only=True)

    @property
    def success(self) -> bool:
        return False

    def value_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]
