# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Installed-package commands.

There is no package database yet, so both commands only report what they
would act on.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def info(name: str) -> None:
	logger.info("Retrieving info for package: %s", name)


def uninstall(name: str) -> None:
	logger.info("Removing package: %s", name)
