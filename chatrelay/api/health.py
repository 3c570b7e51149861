from fastapi import APIRouter, HTTPException, Request
from datetime import datetime
from chatrelay.core.config import settings
from chatrelay.database import check_database_health

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request):
    """Application health check endpoint"""
    try:
        db_health = await check_database_health()
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Health check failed: {str(e)}"
        )

    manager = request.app.state.connection_manager
    return {
        "status": "healthy" if db_health["overall"] else "unhealthy",
        "timestamp": datetime.utcnow(),
        "databases": {
            "mongodb": "connected" if db_health["mongodb"] else "disconnected"
        },
        "realtime": {
            "connections": len(manager.connections),
            "online_users": manager.get_online_users_count()
        },
        "service": settings.app_name
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes readiness probe endpoint"""
    db_health = await check_database_health()

    if not db_health["overall"]:
        raise HTTPException(
            status_code=503,
            detail="Service not ready - database connections failed"
        )

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive", "timestamp": datetime.utcnow()}
