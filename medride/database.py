"""
MongoDB Database Connection using MongoEngine
Handles connection and disconnection to MongoDB
"""

import logging

from mongoengine import connect, disconnect

from medride.config import Settings

logger = logging.getLogger(__name__)


def connect_db(settings: Settings):
    """
    Connect to MongoDB using MongoEngine
    Uses MONGO_URI from the application settings
    """
    try:
        client = connect(host=settings.mongo_uri, alias=settings.mongo_alias)
        logger.info("Connected to MongoDB successfully")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {str(e)}")
        raise


def disconnect_db(settings: Settings) -> None:
    """Disconnect from MongoDB"""
    try:
        disconnect(alias=settings.mongo_alias)
        logger.info("Disconnected from MongoDB")
    except Exception as e:
        logger.error(f"Error disconnecting from MongoDB: {str(e)}")
