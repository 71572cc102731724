"""Centralized logging configuration for specks."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "specks"


def setup_logging(
	level: Optional[str] = None,
	log_dir: Optional[Path] = None,
) -> logging.Logger:
	"""
	Set up logging with a console handler and an optional rotating file handler.

	Console output goes to stderr so that --json output on stdout stays parseable.

	Args:
		level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to SPECKS_LOG_LEVEL or INFO.
		log_dir: Directory for the rotating log file. No file handler when omitted.

	Returns:
		The configured "specks" logger
	"""
	level = level or os.getenv("SPECKS_LOG_LEVEL", "INFO")
	log_level = getattr(logging, level.upper(), logging.INFO)

	logger = logging.getLogger(LOGGER_NAME)
	logger.setLevel(logging.DEBUG)

	# Avoid duplicate handlers
	if logger.handlers:
		for handler in logger.handlers:
			if isinstance(handler, logging.StreamHandler) and not isinstance(handler, RotatingFileHandler):
				handler.setLevel(log_level)
		return logger

	simple_formatter = logging.Formatter(
		"%(asctime)s [%(levelname)s] %(message)s",
		datefmt="%H:%M:%S",
	)
	detailed_formatter = logging.Formatter(
		"%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
		datefmt="%Y-%m-%d %H:%M:%S",
	)

	console_handler = logging.StreamHandler(sys.stderr)
	console_handler.setLevel(log_level)
	console_handler.setFormatter(simple_formatter)
	logger.addHandler(console_handler)

	if log_dir is not None:
		log_dir.mkdir(parents=True, exist_ok=True)
		file_handler = RotatingFileHandler(
			log_dir / f"{LOGGER_NAME}.log",
			maxBytes=10 * 1024 * 1024,  # 10 MB
			backupCount=5,
		)
		file_handler.setLevel(logging.DEBUG)  # File gets all logs
		file_handler.setFormatter(detailed_formatter)
		logger.addHandler(file_handler)

	return logger
