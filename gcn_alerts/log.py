"""
Logging setup for the daemon entry points.

Library modules only ever call logging.getLogger(__name__) or use the logger
handed to them; configuring handlers happens here, once per process.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def configure_logging(tag: str, level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure process-wide logging.

    Args:
        tag: Daemon tag shown in every line (e.g. SCRIPT_STARTER)
        level: Root logging level name
        log_dir: If set, also write to <log_dir>/<tag>-log-YYYY-MM-DD.txt

    Returns:
        The daemon's top level logger
    """
    fmt = f'%(asctime)s - {tag} - %(levelname)s - %(message)s'
    handlers = [logging.StreamHandler()]

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        handlers.append(logging.FileHandler(directory / f"{tag.lower()}-log-{day}.txt"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        handlers=handlers,
        force=True
    )
    return logging.getLogger(f"gcn_alerts.{tag.lower()}")
