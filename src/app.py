import json
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from src.infra.config.settings import settings
from src.infra.database import get_database_manager
from src.core.logger.logger import logger
from src.api.router import health, jsonrpc
from src.api.middleware.logging.request_logging import RequestLoggingMiddleware
from src.core.exceptions.base import RPCError
from src.core.exceptions.handler import GlobalErrorHandler

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
ERC-4337 Verifying Paymaster - gas sponsorship over JSON-RPC 2.0.

## Methods
- **pm_sponsorUserOperation**: charge the sender's allowance and sign the operation
- **pm_gasRemain**: remaining allowance of an address
- **pm_config**: allowance tiers
- **pm_requestGas**: grant or refill an allowance (VIP token holders get the VIP tier)

## Authentication
Calls are posted to `/{api_key}`.
        """,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT"
        }
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,  # 10 minutes
    )

    # Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Add centralized error handlers
    app.add_exception_handler(RPCError, GlobalErrorHandler.rpc_error_handler)
    app.add_exception_handler(RequestValidationError, GlobalErrorHandler.validation_error_handler)
    app.add_exception_handler(Exception, GlobalErrorHandler.general_exception_handler)

    # Include routers; health first so /health is not taken for an API key
    app.include_router(health.router)
    app.include_router(jsonrpc.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(json.dumps({
            "message": "Starting paymaster",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "chain_id": settings.CHAIN_ID,
            "entry_point": settings.ENTRY_POINT
        }))

        try:
            await get_database_manager().create_tables()
        except Exception as e:
            logger.error(f"Failed to initialize database on startup: {str(e)}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info(json.dumps({
            "message": "Shutting down paymaster",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION
        }))
        await get_database_manager().close()

    return app
