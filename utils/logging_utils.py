#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Logging Utilities for Classroom Forest
Sets up application logging with file and console handlers
"""

import os
import sys
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(log_dir: Optional[str] = None,
                  log_level: int = logging.INFO,
                  log_format: Optional[str] = None,
                  enable_console: bool = True,
                  enable_file: bool = True,
                  max_log_size: int = 10485760,  # 10MB
                  backup_count: int = 5) -> logging.Logger:
    """
    Set up application logging with file and console handlers

    Args:
        log_dir: Directory for log files (default: 'logs' in app directory)
        log_level: Logging level (default: INFO)
        log_format: Log message format (default: defined in function)
        enable_console: Whether to enable console logging
        enable_file: Whether to write a rotating log file
        max_log_size: Maximum size for log files before rotation (bytes)
        backup_count: Number of backup log files to keep

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    formatter = logging.Formatter(log_format)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(log_level)
        root_logger.addHandler(console_handler)

    log_file = None
    if enable_file:
        if log_dir is None:
            app_dir = Path(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
            log_dir = app_dir / 'logs'
        else:
            log_dir = Path(log_dir)

        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = log_dir / f'classroom_forest_{timestamp}.log'

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_log_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file or 'console only'}")
    logger.info(f"Log level: {logging.getLevelName(log_level)}")

    return root_logger
