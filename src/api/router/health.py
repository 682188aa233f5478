from fastapi import APIRouter, Depends, status
from datetime import datetime
from typing import Dict, Any

from src.core.logger.logger import logger
from src.core.dependencies import get_chain_client
from src.infra.config.redis import get_redis
from src.infra.config.settings import settings
from src.infra.database import get_database_manager
from src.api.utils.metrics import SimpleMetrics, get_metrics

router = APIRouter(tags=["Health"])


async def check_redis_health() -> Dict[str, str]:
    """Check Redis connection health."""
    if settings.ACCOUNT_LOCK_BACKEND != "redis":
        return {"status": "not_configured", "message": "Local account locks in use"}
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


async def check_database_health() -> Dict[str, str]:
    if await get_database_manager().ping():
        return {"status": "healthy", "message": "Connected"}
    return {"status": "unhealthy", "message": "Ping failed"}


async def check_chain_health() -> Dict[str, Any]:
    """Check the RPC node and signer configuration."""
    try:
        chain = get_chain_client()
    except Exception as e:
        return {"status": "not_configured", "message": str(e)}

    connected = await chain.is_connected()
    return {
        "status": "healthy" if connected else "unhealthy",
        "message": "Connected" if connected else "RPC node unreachable",
        "paymaster_contract": chain.paymaster_address,
        "chain_id": settings.CHAIN_ID
    }


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(metrics: SimpleMetrics = Depends(get_metrics)):
    """
    Health check endpoint.
    Returns the status of the database, chain node and lock backend plus call metrics.
    """
    services = {
        "database": await check_database_health(),
        "chain": await check_chain_health(),
        "redis": await check_redis_health()
    }

    statuses = [service["status"] for service in services.values()]
    if "unhealthy" in statuses:
        overall_status = "unhealthy"
    elif "not_configured" in statuses[:2]:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    if overall_status != "healthy":
        logger.warning(
            f"Health check: {overall_status}",
            extra={"services": {name: s["status"] for name, s in services.items()}}
        )

    return {
        "status": overall_status,
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "services": services,
        "metrics": metrics.get_metrics_summary(),
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }
