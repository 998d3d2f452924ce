"""
GridFS source operations for GridFS S3 Migration Tool.
Lists stored files and opens download streams for them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

import gridfs
from gridfs.errors import GridFSError, NoFile
from pymongo.errors import PyMongoError

from gsmt.core.connection import SourceConnection


@dataclass(frozen=True)
class FileRecord:
    """Information about one file stored in GridFS"""

    filename: str
    file_id: Any = None
    length: Optional[int] = None
    upload_date: Optional[datetime] = None


class SourceError(Exception):
    """Base class for GridFS source failures"""

    pass


class ListError(SourceError):
    """Raised when the GridFS bucket cannot be enumerated"""

    pass


class NotFoundError(SourceError):
    """Raised when a listed file no longer exists in GridFS"""

    pass


class ReadError(SourceError):
    """Raised when a GridFS download stream cannot be opened"""

    pass


def _bucket(connection: SourceConnection, bucket_name: str) -> gridfs.GridFSBucket:
    return gridfs.GridFSBucket(connection.db, bucket_name=bucket_name)


class SourceLister:
    """Enumerates the files stored in a GridFS bucket"""

    def __init__(self, connection: SourceConnection, bucket_name: str = "fs"):
        """
        Initialize source lister

        Args:
            connection: Open source connection
            bucket_name: GridFS bucket name (default: "fs")
        """
        self._connection = connection
        self._bucket_name = bucket_name

    def list_files(self) -> List[FileRecord]:
        """
        List every file in the bucket as a single snapshot

        Returns:
            List of FileRecord objects

        Raises:
            ListError: If the bucket cannot be enumerated
        """
        try:
            bucket = _bucket(self._connection, self._bucket_name)
            return [
                FileRecord(
                    filename=grid_out.filename,
                    file_id=grid_out._id,
                    length=grid_out.length,
                    upload_date=grid_out.upload_date,
                )
                for grid_out in bucket.find()
            ]
        except (PyMongoError, GridFSError) as e:
            raise ListError(f"Failed to list GridFS files: {e}") from e


class ObjectReader:
    """Opens download streams for GridFS files"""

    def __init__(self, connection: SourceConnection, bucket_name: str = "fs"):
        self._connection = connection
        self._bucket_name = bucket_name

    def open(self, record: FileRecord):
        """
        Open a download stream for a file, looked up by name

        The stream is single-pass and must be closed by the caller.

        Raises:
            NotFoundError: If no file with that name exists anymore
            ReadError: If the stream cannot be opened
        """
        try:
            bucket = _bucket(self._connection, self._bucket_name)
            return bucket.open_download_stream_by_name(record.filename)
        except NoFile as e:
            raise NotFoundError(f"File not found in GridFS: {record.filename}") from e
        except (PyMongoError, GridFSError) as e:
            raise ReadError(f"Failed to read {record.filename}: {e}") from e
