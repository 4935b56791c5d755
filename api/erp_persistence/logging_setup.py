# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
from pathlib import Path

LOG_FILE_NAME = "erp_persistence.log"


def setup_logging(settings) -> Path:
    """Configure rotating file logging under ERP_DATA_ROOT/logs/erp_persistence.log"""
    root = Path(settings.ERP_DATA_ROOT).expanduser()
    log_dir = root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME
    level = logging.getLevelName(str(settings.LOG_LEVEL).upper())
    if not isinstance(level, int):
        level = logging.INFO

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(fmt)
    handler.setLevel(level)

    logger = logging.getLogger()  # root
    logger.setLevel(level)
    # avoid duplicate handlers
    if not any(isinstance(h, logging.handlers.RotatingFileHandler) and getattr(h, 'baseFilename', '').endswith(LOG_FILE_NAME) for h in logger.handlers):
        logger.addHandler(handler)

    # driver loggers propagate to root; keep them quiet unless SQL echo is on
    for name in ("sqlalchemy.engine", "asyncpg"):
        lg = logging.getLogger(name)
        lg.setLevel(logging.INFO if getattr(settings, "DB_ECHO", False) else logging.WARNING)

    return log_path
