# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Logging helpers for the peach CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int = logging.INFO) -> None:
	"""Configure default logging if no handlers are present."""
	root = logging.getLogger()
	if root.handlers:
		return
	logging.basicConfig(
		level=level,
		format=LOG_FORMAT,
		datefmt=LOG_DATEFMT,
		handlers=[logging.StreamHandler()],
	)
