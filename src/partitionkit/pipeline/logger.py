# partitionkit/pipeline/logger.py
from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

# Chatty third-party loggers kept at WARNING unless asked otherwise
QUIET_LOGGERS = ("urllib3", "requests")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(processName)s] %(name)s: %(message)s"


def setup_logger(
    log_dir: Optional[str | Path] = None,
    *,
    level: int = logging.INFO,
    filename_prefix: str = "partitionkit",
    console: bool = True,
    rotate: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    quiet: Iterable[str] = QUIET_LOGGERS,
    force: bool = False,
) -> Optional[Path]:
    """
    Configure root logging for a scheduler or worker process.

    With ``log_dir`` a timestamped log file is written there; a file-like
    path (one with a suffix, e.g. the progress database) logs next to it.
    Without ``log_dir`` only the console handler is installed, which is what
    supervised worker processes want.

    Returns the log file path, or None when logging to the console only.
    """
    root = logging.getLogger()
    if force:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()

    root.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    log_file: Optional[Path] = None
    if log_dir is not None:
        p = Path(log_dir).expanduser()
        target_dir = p if (p.is_dir() or not p.suffix) else p.parent
        target_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = target_dir / f"{filename_prefix}_{ts}.log"

        if rotate:
            fhandler: logging.Handler = RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        else:
            fhandler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        fhandler.setLevel(level)
        fhandler.setFormatter(fmt)
        root.addHandler(fhandler)

    if console:
        shandler = logging.StreamHandler()
        shandler.setLevel(level)
        shandler.setFormatter(fmt)
        root.addHandler(shandler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if log_file is not None:
        root.info("Logging to: %s", str(log_file))
    return log_file
