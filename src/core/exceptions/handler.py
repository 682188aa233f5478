"""
Centralized error handling for the JSON-RPC endpoint.
Every failure leaves the service as a well-formed JSON-RPC error envelope with HTTP 200.
"""

import traceback
from typing import Any, Dict, Optional, Union
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from src.core.exceptions.base import RPCError, RPCErrorCode
from src.core.logger.logger import get_logger
from src.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()

RequestId = Optional[Union[int, float]]


class ErrorResponseBuilder:
    """Builds JSON-RPC 2.0 response envelopes"""

    @staticmethod
    def build_error_response(
        code: int,
        message: str,
        data: Any = None,
        request_id: RequestId = None
    ) -> Dict[str, Any]:
        """Build an error envelope"""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {
                "code": code,
                "message": message,
                "data": data
            }
        }

    @staticmethod
    def from_rpc_error(error: RPCError, request_id: RequestId = None) -> Dict[str, Any]:
        return ErrorResponseBuilder.build_error_response(
            code=error.code,
            message=error.message,
            data=error.data,
            request_id=request_id
        )

    @staticmethod
    def build_result_response(result: Any, request_id: RequestId) -> Dict[str, Any]:
        """Build a success envelope"""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }


class GlobalErrorHandler:
    """FastAPI exception handlers; anything escaping a route still answers in JSON-RPC form"""

    @staticmethod
    async def rpc_error_handler(request: Request, exc: RPCError) -> JSONResponse:
        """Handle RPCError raised outside the dispatcher"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        logger.warning(
            f"RPC error: {exc.code}",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "request_id": request_id,
                "method": request.method
            }
        )

        return JSONResponse(
            status_code=200,
            content=ErrorResponseBuilder.from_rpc_error(exc)
        )

    @staticmethod
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle FastAPI request validation errors"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        validation_errors = []
        for error in exc.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            validation_errors.append({
                'field': field,
                'message': error['msg']
            })

        logger.warning(
            f"Validation error: {len(validation_errors)} errors",
            extra={
                "validation_errors": validation_errors,
                "request_id": request_id,
                "method": request.method
            }
        )

        return JSONResponse(
            status_code=200,
            content=ErrorResponseBuilder.build_error_response(
                code=RPCErrorCode.INVALID_REQUEST,
                message="Invalid Request",
                data=validation_errors
            )
        )

    @staticmethod
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        logger.error(
            f"Unexpected error: {type(exc).__name__}",
            extra={
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "request_id": request_id,
                "method": request.method
            },
            exc_info=True
        )

        # Never expose internal errors in production
        if settings.DEBUG:
            data = {"error": str(exc), "traceback": traceback.format_exc()}
        else:
            data = None

        return JSONResponse(
            status_code=200,
            content=ErrorResponseBuilder.build_error_response(
                code=RPCErrorCode.INTERNAL_ERROR,
                message="Internal error",
                data=data
            )
        )
