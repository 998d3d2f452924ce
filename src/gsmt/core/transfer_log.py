"""
Transfer logging module for GridFS S3 Migration Tool.
Keeps a per-day JSON history of migration runs.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

@dataclass
class TransferLogEntry:
    """Single migration run log entry"""
    timestamp: str
    source: str
    destination: str
    successful_files: List[str]
    failed_files: List[str]
    total_size: int
    duration: float
    policy: str
    skipped_files: List[str] = field(default_factory=list)


def redact_uri(uri: str) -> str:
    """Hide the password part of a connection URI"""
    try:
        parts = urlsplit(uri)
    except ValueError:
        return uri
    if parts.password is None:
        return uri
    netloc = parts.netloc.replace(f":{parts.password}@", ":****@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


class TransferLogger:
    """Manages migration run logging"""

    def __init__(self, log_dir: str = None):
        """
        Initialize transfer logger

        Args:
            log_dir: Directory to store log files (default: ~/.config/gsmt/logs)
        """
        if log_dir is None:
            config_dir = os.path.expanduser("~/.config/gsmt")
            log_dir = os.path.join(config_dir, "logs")

        self.log_dir = Path(log_dir).expanduser()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _get_log_file(self, date: Optional[str] = None) -> Path:
        """Get the log file path for a date (default: today)"""
        if date is None:
            date = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"transfer_log_{date}.json"

    def _load_logs(self, date: Optional[str] = None) -> List[dict]:
        log_file = self._get_log_file(date)
        if log_file.exists():
            try:
                with open(log_file, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except json.JSONDecodeError:
                return []
        return []

    def _save_logs(self, logs: List[dict]):
        log_file = self._get_log_file()
        with open(log_file, 'w', encoding='utf-8') as f:
            json.dump(logs, f, indent=2, ensure_ascii=False)

    def add_entry(self, entry: TransferLogEntry):
        """Append a run entry to today's log"""
        logs = self._load_logs()
        logs.append(asdict(entry))
        self._save_logs(logs)

    def get_entries(self, date: Optional[str] = None) -> List[TransferLogEntry]:
        """
        Get run log entries for a specific date

        Args:
            date: Date string in YYYY-MM-DD format (default: today)

        Returns:
            List of TransferLogEntry objects
        """
        try:
            return [TransferLogEntry(**entry) for entry in self._load_logs(date)]
        except TypeError:
            return []

    def get_log_dates(self) -> List[str]:
        """Get list of dates that have run logs"""
        return sorted(
            log_file.stem.rsplit("_", 1)[-1]
            for log_file in self.log_dir.glob("transfer_log_*.json")
        )
