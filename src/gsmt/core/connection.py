"""
Source connection module for GridFS S3 Migration Tool.
Handles MongoDB connection setup and teardown.
"""

from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConfigurationError, PyMongoError


class SourceConnectionError(Exception):
    """Raised when the MongoDB connection cannot be opened or closed"""

    pass


class SourceConnection:
    """Explicit handle on the MongoDB client and the selected database"""

    def __init__(self, mongo_uri: str, db_name: Optional[str] = None):
        """
        Initialize source connection

        Args:
            mongo_uri: MongoDB connection string (mongodb://...)
            db_name: Database name (default: the database named in the URI)
        """
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self._client: Optional[MongoClient] = None
        self._db: Optional[Database] = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def db(self) -> Database:
        """Get the selected database, failing if the connection is not open"""
        if self._db is None:
            raise SourceConnectionError("Connection to MongoDB is not open")
        return self._db

    def open(self) -> "SourceConnection":
        """
        Open the connection and select the database

        Returns:
            SourceConnection: self, for chaining

        Raises:
            SourceConnectionError: If the client cannot connect
        """
        if self._client is not None:
            return self

        try:
            client = MongoClient(self.mongo_uri)
        except (PyMongoError, ValueError) as e:
            raise SourceConnectionError(f"Failed to connect to MongoDB: {e}") from e

        try:
            # Force server selection so bad URIs fail here, not during listing
            client.admin.command("ping")
        except PyMongoError as e:
            client.close()
            raise SourceConnectionError(f"Failed to connect to MongoDB: {e}") from e

        try:
            db = client[self.db_name] if self.db_name else client.get_default_database()
        except ConfigurationError as e:
            client.close()
            raise SourceConnectionError(
                "No database name given and none found in the Mongo URI"
            ) from e

        self._client = client
        self._db = db
        return self

    def close(self):
        """Close the connection; safe to call when it was never opened"""
        if self._client is None:
            return

        client = self._client
        self._client = None
        self._db = None
        try:
            client.close()
        except PyMongoError as e:
            raise SourceConnectionError(f"Failed to close MongoDB connection: {e}") from e

    def __enter__(self) -> "SourceConnection":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
