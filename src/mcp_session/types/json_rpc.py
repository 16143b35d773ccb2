"""Minimum amount of base models to represent the types from JSON-RPC used by MCP."""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

JSONRPC_VERSION: Final[str] = "2.0"

PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# Implementation-defined server errors (-32000 to -32099)
CONNECTION_CLOSED: Final[int] = -32000
REQUEST_TIMEOUT: Final[int] = -32001
SESSION_EXPIRED: Final[int] = -32002
HTTP_ERROR: Final[int] = -32003

RequestId = Annotated[int, Field(strict=True)] | str


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse
JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse


def _message_kind(value: Any) -> str:
    """Pick the envelope type by key presence; extra="allow" makes plain unions ambiguous."""
    if isinstance(value, dict):
        keys = value.keys()
    else:
        keys = {name for name in ("id", "method", "error") if getattr(value, name, None) is not None}
    if "method" in keys:
        return "request" if "id" in keys else "notification"
    if "error" in keys:
        return "error"
    return "result"


JSONRPCMessageAdapter: TypeAdapter[JSONRPCMessage] = TypeAdapter(
    Annotated[
        Annotated[JSONRPCRequest, Tag("request")]
        | Annotated[JSONRPCNotification, Tag("notification")]
        | Annotated[JSONRPCResultResponse, Tag("result")]
        | Annotated[JSONRPCErrorResponse, Tag("error")],
        Discriminator(_message_kind),
    ]
)
