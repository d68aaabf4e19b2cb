#!/usr/bin/env python3
"""Audit Logger - Append-only access log for secrets file operations.

Records who read or wrote which secrets file, and failed unlock attempts.
Never records passphrases, keys or secret values.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

RESULT_OK = "OK"
RESULT_DENIED = "DENIED"
RESULT_ERROR = "ERROR"

ACTION_READ = "READ"
ACTION_WRITE = "WRITE"


class AuditLogger:
    """Append-only access logger."""

    def __init__(self, log_path: Path):
        """Initialize audit logger.

        Args:
            log_path: Path to the log file (e.g., ~/.secrets-access.log)

        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        # Create log file with secure permissions if it doesn't exist
        if not self.log_path.exists():
            fd = os.open(
                str(self.log_path),
                os.O_CREAT | os.O_APPEND | os.O_WRONLY,
                0o600
            )
            os.close(fd)

    def log_access(
        self,
        result: str,
        action: str,
        path,
        reason: Optional[str] = None
    ) -> None:
        """Append one access record.

        Format: ISO8601Z [PID] RESULT ACTION secrets-file [reason]

        Args:
            result: OK | DENIED | ERROR
            action: READ | WRITE
            path: The secrets file that was accessed
            reason: Optional reason for DENIED/ERROR

        """
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")

        parts = [timestamp, f"[{os.getpid()}]", result, action, str(path)]
        if reason:
            parts.append(reason)

        with open(self.log_path, "a") as f:
            f.write(" ".join(parts) + "\n")

    def read_recent(self, lines: int = 100) -> List[str]:
        """Read recent log entries, most recent last."""
        if not self.log_path.exists():
            return []

        with open(self.log_path) as f:
            return f.readlines()[-lines:]
