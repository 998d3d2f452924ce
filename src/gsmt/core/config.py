"""
Configuration management for GridFS S3 Migration Tool.
Handles defaults, config files, and validation of run options.
"""

from dataclasses import asdict, dataclass, fields
from pathlib import Path
import json
from typing import Any, Dict, Optional


class PoolConfig:
    """Defaults for migration runs"""
    # Number of uploads running at the same time
    DEFAULT_CONCURRENCY = 10

    DEFAULT_REGION = "us-east-1"

    # Content type used when the extension is unknown
    FALLBACK_CONTENT_TYPE = "application/octet-stream"

    # GridFS bucket holding the files
    DEFAULT_GRIDFS_BUCKET = "fs"


class ConfigError(Exception):
    """Raised when migration options are missing or invalid"""

    pass


@dataclass
class MigrationConfig:
    """Options for a single migration run"""
    mongo_uri: str
    folder: str
    bucket: str
    db_name: Optional[str] = None
    region: str = PoolConfig.DEFAULT_REGION
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    concurrency: int = PoolConfig.DEFAULT_CONCURRENCY
    fail_fast: bool = False
    gridfs_bucket: str = PoolConfig.DEFAULT_GRIDFS_BUCKET

    def validate(self) -> "MigrationConfig":
        """Check option consistency, raising ConfigError on the first problem"""
        if not self.mongo_uri:
            raise ConfigError("Missing Mongo URI")
        if self.folder is None:
            raise ConfigError("Missing folder")
        if not self.bucket:
            raise ConfigError("Missing bucket name")
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ConfigError(
                "access_key_id and secret_access_key must be given together"
            )
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int):
            raise ConfigError(f"Concurrency must be an integer, got {self.concurrency!r}")
        if self.concurrency < 1:
            raise ConfigError(f"Concurrency must be at least 1, got {self.concurrency}")
        return self

    def masked(self) -> Dict[str, Any]:
        """Options as a dict with the secret access key hidden"""
        data = asdict(self)
        if data.get("secret_access_key"):
            data["secret_access_key"] = "****"
        return data

    @classmethod
    def option_names(cls) -> set:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_file(cls, path: str) -> Dict[str, Any]:
        """
        Load option defaults from a JSON file

        Args:
            path: Path to a JSON object whose keys match option names

        Returns:
            Dict of known options found in the file

        Raises:
            ConfigError: If the file cannot be read or has unknown keys
        """
        try:
            with open(Path(path).expanduser(), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

        unknown = set(data) - cls.option_names()
        if unknown:
            raise ConfigError(
                f"Unknown options in {path}: {', '.join(sorted(unknown))}"
            )
        return data
