"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Directory
    users = db["users"]
    users.create_index("user_id", unique=True)
    users.create_index("email", unique=True)
    users.create_index("aad_id", sparse=True)
    users.create_index("full_name")

    db["business_unit_groups"].create_index("name", unique=True)
    db["teams"].create_index("member_ids")

    # Master data
    db["target_business_groups"].create_index("name", unique=True)
    db["categories"].create_index("name", unique=True)
    db["subcategories"].create_index([("category_id", ASCENDING), ("name", ASCENDING)], unique=True)
    db["projects"].create_index("name", unique=True)

    mappings = db["classification_mappings"]
    mappings.create_index(
        [("target_business_group_id", ASCENDING), ("category_id", ASCENDING), ("subcategory_id", ASCENDING)],
        unique=True
    )

    # Tickets collection
    tickets = db["tickets"]
    tickets.create_index("ticket_id", unique=True)
    tickets.create_index("ticket_number", unique=True)
    tickets.create_index([("is_deleted", ASCENDING), ("created_at", DESCENDING)])
    tickets.create_index("status")
    tickets.create_index("created_by.user_id")
    tickets.create_index("assigned_to.user_id")
    tickets.create_index("spoc.user_id")
    tickets.create_index("parent_ticket_id", sparse=True)

    comments = db["comments"]
    comments.create_index("comment_id", unique=True)
    comments.create_index([("ticket_id", ASCENDING), ("created_at", ASCENDING)])

    attachments = db["attachments"]
    attachments.create_index("attachment_id", unique=True)
    attachments.create_index("ticket_id")

    # Notification outbox collection
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("next_retry_at", ASCENDING)])
    notification_outbox.create_index("ticket_id")
    notification_outbox.create_index("locked_until")

    # Audit log collection
    audit_log = db["audit_log"]
    audit_log.create_index("audit_id", unique=True)
    audit_log.create_index([("ticket_id", ASCENDING), ("created_at", DESCENDING)])
    audit_log.create_index("correlation_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        get_database().command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
