"""
Health checks хранилища.
"""

from typing import Dict
import time
import logging

from perfbudget.core.errors import StorageError
from perfbudget.core.storage import StorageMethod

logger = logging.getLogger(__name__)


async def check_storage(storage: StorageMethod) -> Dict:
    """Проверка backend'а хранилища"""
    start_time = time.time()
    try:
        await storage.ping()
    except StorageError as e:
        logger.error(f"Storage health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }

    latency_ms = (time.time() - start_time) * 1000
    return {
        "status": "healthy",
        "latency_ms": round(latency_ms, 2),
    }


async def full_health_check(components: Dict) -> Dict:
    """Полная проверка всех компонентов"""
    results = {}

    if "storage" in components:
        results["storage"] = await check_storage(components["storage"])

    # Общий статус
    all_healthy = all(
        r.get("status") == "healthy"
        for r in results.values()
    )

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "components": results,
        "timestamp": time.time()
    }
