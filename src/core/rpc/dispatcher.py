"""
JSON-RPC 2.0 request dispatcher.

Operations are registered explicitly with the shapes of their positional
parameters. A call is resolved by case-insensitive name, its arguments are
coerced one by one, and the operation is invoked (sync or async). Results and
errors are turned back into JSON-RPC envelopes. Batches and notifications are
not supported.
"""

import inspect
import json
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from src.core.exceptions.base import (
    RPCError,
    RPCErrorCode,
    ParseError,
    InvalidRequest,
    InvalidParams,
    MethodNotFound,
)
from src.core.exceptions.handler import ErrorResponseBuilder, RequestId
from src.core.rpc.params import ParamShape, coerce_param, is_supported
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MethodSpec:
    """A registered operation and the shapes of its positional parameters"""
    name: str
    handler: Callable[..., Any]
    params: Tuple[ParamShape, ...] = ()


class MethodRegistry:
    """Name -> operation table. Lookup ignores case."""

    def __init__(self) -> None:
        self._methods: Dict[str, MethodSpec] = {}

    @staticmethod
    def _normalize(name: str) -> str:
        return name.lower()

    def register(self, name: str, handler: Callable[..., Any], params: Sequence[ParamShape] = ()) -> MethodSpec:
        if not isinstance(name, str) or not name:
            raise ValueError("Method name must be a non-empty string")
        key = self._normalize(name)
        if key in self._methods:
            raise ValueError(f"Method already registered: {name}")

        for index, shape in enumerate(params):
            if not is_supported(shape):
                # Left registered: calls fail closed with InternalError
                logger.warning(
                    f"Method {name} declares unsupported parameter shape",
                    extra={"rpc_method": name, "param_index": index, "shape": str(shape)}
                )

        spec = MethodSpec(name=name, handler=handler, params=tuple(params))
        self._methods[key] = spec
        logger.debug(f"Registered JSON-RPC method {name}", extra={"rpc_method": name})
        return spec

    def resolve(self, name: str) -> MethodSpec:
        spec = self._methods.get(self._normalize(name))
        if spec is None:
            raise MethodNotFound(data="Method not found")
        return spec


def _is_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity; neither can be echoed back as an id
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _encode_result(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", by_alias=True)
    return result


class RequestDispatcher:
    """Decodes JSON-RPC envelopes, invokes registered operations and encodes the outcome."""

    UNKNOWN_METHOD = "<unknown>"

    def __init__(
        self,
        registry: MethodRegistry,
        observer: Optional[Callable[[str, Dict[str, Any]], None]] = None,
    ):
        self.registry = registry
        # Called with (method name, response envelope) after every dispatched call
        self.observer = observer

    def coerce_arguments(self, spec: MethodSpec, params: List[Any]) -> List[Any]:
        """
        Coerce wire arguments into the operation's declared shapes.

        Extra trailing arguments are ignored; a missing declared argument is an
        InvalidParams error naming its position.
        """
        if len(params) > len(spec.params):
            logger.debug(
                "Ignoring extra JSON-RPC params",
                extra={"rpc_method": spec.name, "declared": len(spec.params), "received": len(params)}
            )

        args = []
        for index, shape in enumerate(spec.params):
            if index >= len(params):
                raise InvalidParams(data=f"Param [{index}] is missing")
            args.append(coerce_param(index, params[index], shape))
        return args

    async def invoke(self, spec: MethodSpec, args: List[Any]) -> Any:
        result = spec.handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def dispatch(self, method: str, params: List[Any], request_id: RequestId) -> Dict[str, Any]:
        """Run one call and return its response envelope. Never raises."""
        spec: Optional[MethodSpec] = None
        response = await self._dispatch(method, params, request_id)
        if self.observer is not None:
            try:
                spec = self.registry.resolve(method)
            except MethodNotFound:
                pass
            self.observer(spec.name if spec else self.UNKNOWN_METHOD, response)
        return response

    async def _dispatch(self, method: str, params: List[Any], request_id: RequestId) -> Dict[str, Any]:
        try:
            spec = self.registry.resolve(method)
            args = self.coerce_arguments(spec, params)
            result = await self.invoke(spec, args)
            return ErrorResponseBuilder.build_result_response(_encode_result(result), request_id)

        except RPCError as e:
            return ErrorResponseBuilder.from_rpc_error(e, request_id)

        except Exception as e:
            logger.error(
                f"JSON-RPC method {method} failed",
                extra={
                    "rpc_method": method,
                    "error_type": type(e).__name__,
                    "error": str(e)
                },
                exc_info=True
            )
            return ErrorResponseBuilder.build_error_response(
                code=RPCErrorCode.HANDLER_ERROR,
                message=str(e),
                data=str(e),
                request_id=request_id
            )

    async def handle(self, body: bytes) -> Dict[str, Any]:
        """Validate a raw request body and dispatch it."""
        request_id: Optional[RequestId] = None
        try:
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise ParseError(data="Error parsing json request")

            if not isinstance(data, dict):
                raise InvalidRequest(data="Request must be a single JSON object")

            if not _is_number(data.get("id")):
                raise InvalidRequest(data="No or invalid 'id' in request")
            request_id = data["id"]

            if data.get("jsonrpc") != "2.0":
                raise InvalidRequest(data="Version of jsonrpc is not 2.0")

            method = data.get("method")
            if not isinstance(method, str):
                raise InvalidRequest(data="No or invalid 'method' in request")

            params = data.get("params")
            if not isinstance(params, list):
                raise InvalidParams(data="No or invalid 'params' in request")

        except RPCError as e:
            return ErrorResponseBuilder.from_rpc_error(e, request_id)

        return await self.dispatch(method, params, request_id)
