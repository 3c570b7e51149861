import logging
from .mongodb import init_mongodb, close_mongo_connection, check_mongo_connection, get_database

logger = logging.getLogger(__name__)


async def init_databases():
    """Initialize MongoDB"""
    try:
        await init_mongodb()
        logger.info("All databases initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


async def close_databases():
    """Close all database connections"""
    try:
        await close_mongo_connection()
        logger.info("All database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


async def check_database_health():
    """Check health of all database connections"""
    mongo_status = await check_mongo_connection()

    return {
        "mongodb": mongo_status,
        "overall": mongo_status
    }

__all__ = [
    "init_databases",
    "close_databases",
    "check_database_health",
    "get_database"
]
