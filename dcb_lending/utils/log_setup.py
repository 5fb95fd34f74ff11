"""
Logging setup for command-line runs.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> Optional[Path]:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_file


def timestamped_log_path(log_dir: Path, loc_account_no: Optional[str] = None, stem: str = "console") -> Path:
    """logs/<loc_account_no>-<timestamp>.log, or logs/<stem>-<timestamp>.log without an account."""
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    name = loc_account_no or stem
    return Path(log_dir) / f"{name}-{stamp}.log"
