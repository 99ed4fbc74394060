# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Runners execute the `command` string of a command step.

A runner is any object with a `name`, an `argv(command)` that builds the child
process argument vector, and `execute(...)` returning the exit status.
`ShellRunner` is the only built-in runner; manifests select it with
`runner = "shell"`.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from peach.errors import StepError

logger = logging.getLogger(__name__)


class Runner(Protocol):
	name: str

	def argv(self, command: str) -> list[str]: ...

	def execute(
		self,
		command: str,
		*,
		cwd: Path | None = None,
		env: Mapping[str, str] | None = None,
		timeout: float | None = None,
	) -> int: ...


@dataclass(frozen=True)
class ShellRunner:
	"""Run the command through a POSIX shell as a single `-c` argument."""

	name: str = "shell"
	shell: str = "/bin/sh"

	def argv(self, command: str) -> list[str]:
		return [self.shell, "-c", command]

	def execute(
		self,
		command: str,
		*,
		cwd: Path | None = None,
		env: Mapping[str, str] | None = None,
		timeout: float | None = None,
	) -> int:
		argv = self.argv(command)
		logger.debug("exec %s (cwd=%s)", argv, cwd)
		try:
			proc = subprocess.run(
				argv,
				cwd=str(cwd) if cwd is not None else None,
				env=dict(env) if env is not None else None,
				check=False,
				timeout=timeout,
			)
		except subprocess.TimeoutExpired as err:
			raise StepError(message=f"command timed out after {timeout}s: {command}") from err
		except OSError as err:
			raise StepError(message=f"cannot start {self.shell}: {err.strerror or err}", path=self.shell) from err
		return proc.returncode


_RUNNERS: dict[str, Runner] = {
	"shell": ShellRunner(),
}


def get_runner(name: str) -> Runner:
	"""Return the runner registered under `name`; `KeyError` if unknown."""
	return _RUNNERS[name]


def runner_names() -> list[str]:
	return sorted(_RUNNERS)
