from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.core.dependencies import get_dispatcher, require_api_key
from src.core.exceptions.base import ParseError, RPCError
from src.core.exceptions.handler import ErrorResponseBuilder
from src.core.rpc.dispatcher import RequestDispatcher
from src.core.service.access.models import ApiKey
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["JSON-RPC"])


def _envelope(error: RPCError) -> JSONResponse:
    return JSONResponse(status_code=200, content=ErrorResponseBuilder.from_rpc_error(error))


@router.post("/")
async def missing_key() -> JSONResponse:
    return _envelope(ParseError("Key error", data="No key"))


@router.api_route("/{key}", methods=["GET", "PUT", "PATCH", "DELETE"])
async def wrong_verb(key: str) -> JSONResponse:
    return _envelope(ParseError(data="POST method expected"))


@router.post("/{key}")
async def jsonrpc_endpoint(
    request: Request,
    api_key: ApiKey = Depends(require_api_key),
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
) -> JSONResponse:
    """
    JSON-RPC 2.0 endpoint. The API key is the last path segment.

    The key is checked by require_api_key before the dispatcher is assembled.
    """
    response = await dispatcher.handle(await request.body())
    logger.debug(
        "JSON-RPC request handled",
        extra={"key_name": api_key.name, "has_error": "error" in response}
    )
    return JSONResponse(status_code=200, content=response)
