"""Error types, the append-only error log, and the CLI exception handler."""
from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_ERROR_LOG = Path("error_log.txt")
DEFAULT_ARCHIVE_DIR = Path("error_logs_archive")


class LendingScriptError(Exception):
    """Base class for errors that stop a lending script."""


class ConfigurationError(LendingScriptError):
    """Missing required setting or an invalid enumerated value."""


class ConfluenceError(LendingScriptError):
    """Wiki page lookup or table extraction failed."""


class FlowAborted(LendingScriptError):
    def __init__(self, message: str, *, code: Optional[str] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.payload = payload


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorLog:
    """
    Append-only text log shared by every flow in the process.

    Application errors carry the full response body so an operator can replay
    what the remote system rejected.
    """

    def __init__(self, path: Path = DEFAULT_ERROR_LOG, archive_dir: Path = DEFAULT_ARCHIVE_DIR) -> None:
        self.path = Path(path)
        self.archive_dir = Path(archive_dir)

    def _append(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(text)

    def record_application_error(self, field_name: str, code: str, message: str, body: Any) -> None:
        self._append(
            f"{_utc_timestamp()}: Error in {field_name} - Code {code} - {message}\n"
            f"Response: {json.dumps(body, default=str, ensure_ascii=False)}\n"
        )

    def record_network_error(self, message: str, field_name: Optional[str] = None) -> None:
        where = f" in {field_name}" if field_name else ""
        self._append(f"{_utc_timestamp()}: Network error{where} - {message}\n")

    def record_failure(self, where: str, message: str) -> None:
        self._append(f"{_utc_timestamp()}: Error in {where} - {message}\n")

    def archive(self) -> Optional[Path]:
        """
        Copy the current log into the archive directory and truncate it.

        Returns:
            Path of the archived copy, or None when there was no log to archive
            (an empty log file is created in that case).
        """
        self.archive_dir.mkdir(parents=True, exist_ok=True)

        if not self.path.exists():
            logger.info("No error log file found, creating %s", self.path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("", encoding="utf-8")
            return None

        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.archive_dir / f"error_log_{stamp}.txt"
        shutil.copyfile(self.path, target)
        self.path.write_text("", encoding="utf-8")
        logger.info("Error log archived to %s", target)
        return target


class ErrorHandler:
    """
    Last stop for exceptions escaping a flow. Failures not already written by
    the extractor (application errors carry a code) go to the error log here.
    """

    def __init__(self, error_log: Optional[ErrorLog] = None) -> None:
        self.error_log = error_log

    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> int:
        """Log a fatal error and return the process exit status."""
        if isinstance(exc, FlowAborted):
            logger.error("Breaking execution: %s (code=%s)", exc.message, exc.code)
        elif isinstance(exc, LendingScriptError):
            logger.error("Error: %s", exc)
        else:
            logger.error("Unhandled error: %s", exc, exc_info=True)
        if context:
            logger.debug("Error context: %s", context)

        already_recorded = isinstance(exc, FlowAborted) and exc.code is not None
        if self.error_log is not None and not already_recorded:
            where = (context or {}).get("command") or type(exc).__name__
            self.error_log.record_failure(where, str(exc))
        return 1
