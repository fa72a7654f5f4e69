"""
Per-session audit log.

Every monitor component accepts a `session_logger(event, details)` callable;
SessionLog is the standard one. It appends `[timestamp] - EVENT - details`
lines to the session's log file and mirrors them to the `logging` module.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Events mirrored above INFO level.
_WARNING_EVENTS = {
    "VIOLATION",
    "VIOLATION_REPORT_FAILED",
    "CHECKPOINT_FAILED",
    "LOCKDOWN_FAILED",
    "SUBMISSION_FAILED",
}
_ERROR_EVENTS = {"SUBMISSION_FATAL", "ERROR"}


class SessionLog:
    """Append-only event log for one exam session."""

    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = Path(log_path) if log_path is not None else None
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def __call__(self, event: str, details: str = ""):
        self.log(event, details)

    def log(self, event: str, details: str = ""):
        """Append an entry to the session log."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        log_entry = f"[{timestamp}] - {event}"
        if details:
            log_entry += f" - {details}"

        if event in _ERROR_EVENTS:
            logger.error("%s - %s", event, details)
        elif event in _WARNING_EVENTS:
            logger.warning("%s - %s", event, details)
        else:
            logger.info("%s - %s", event, details)

        if self.log_path is None:
            return
        with open(self.log_path, 'a', encoding='utf-8') as f:
            f.write(log_entry + "\n")

    def read(self) -> str:
        if self.log_path is None or not self.log_path.exists():
            return ""
        return self.log_path.read_text(encoding='utf-8')
