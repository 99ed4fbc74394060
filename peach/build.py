# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build driver: one manifest in, one package archive out.

Sequence:
- load the manifest with `%{pkgdir}` pointing at the staging directory,
- verify sources already present in `sources_dir` (no network fetching),
- run steps in declared order,
- package the staging directory.

Steps run sequentially in the caller's thread; there is no scheduling,
caching or dependency resolution here.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from peach.archive import Compression, package
from peach.checksum import verify
from peach.errors import ChecksumMismatchError, StepError, io_error
from peach.manifest import CommandStep, Manifest, MoveStep, Step, default_pkgdir, load_manifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOptions:
	manifest_path: Path
	staging_dir: Path | None = None  # default: <cwd>/package
	sources_dir: Path | None = None
	work_dir: Path | None = None  # default: cwd
	out_dir: Path | None = None  # default: cwd
	compression: Compression = Compression.GZIP
	step_timeout: float | None = None
	clean: bool = False


@dataclass(frozen=True)
class BuildReport:
	archive_path: Path
	steps_run: list[str] = field(default_factory=list)
	verified_sources: list[str] = field(default_factory=list)
	unverified_sources: list[str] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {
			"archive_path": str(self.archive_path),
			"steps_run": list(self.steps_run),
			"verified_sources": list(self.verified_sources),
			"unverified_sources": list(self.unverified_sources),
		}


def verify_sources(manifest: Manifest, sources_dir: Path) -> tuple[list[str], list[str]]:
	"""
	Verify every source whose file is already present in `sources_dir`.

	Returns (verified urls, urls with no local file). A present file with a
	wrong digest raises `ChecksumMismatchError`.
	"""
	verified: list[str] = []
	missing: list[str] = []
	for src in manifest.sources:
		local = sources_dir / src.filename
		if not src.filename or not local.is_file():
			logger.warning("source not found locally, skipping verification: %s", src.url)
			missing.append(src.url)
			continue
		if not verify(local, src.checksum):
			raise ChecksumMismatchError(
				message=f"checksum mismatch for source {src.url}",
				path=str(local),
				checksum=src.checksum,
			)
		logger.info("verified source %s", src.filename)
		verified.append(src.url)
	return verified, missing


def step_environment(manifest: Manifest, staging_dir: Path) -> dict[str, str]:
	env = dict(os.environ)
	env["PEACH_PKGDIR"] = str(staging_dir)
	env["PEACH_VERSION"] = manifest.info.version
	env["PEACH_NAME"] = manifest.info.name
	return env


def run_step(
	step: Step,
	*,
	staging_dir: Path,
	work_dir: Path,
	env: dict[str, str] | None = None,
	timeout: float | None = None,
) -> None:
	variant = step.variant
	if isinstance(variant, CommandStep):
		try:
			status = variant.runner.execute(variant.command, cwd=work_dir, env=env, timeout=timeout)
		except StepError as err:
			raise StepError(message=err.message, path=err.path, step=step.name) from err
		if status != 0:
			raise StepError(
				message=f"step '{step.name}' failed: {variant.command}",
				step=step.name,
				exit_status=status,
			)
		return

	if isinstance(variant, MoveStep):
		src = Path(variant.path)
		if not src.is_absolute():
			src = work_dir / src
		if not src.exists() and not src.is_symlink():
			raise StepError(message=f"step '{step.name}': path does not exist", path=str(src), step=step.name)
		dst = staging_dir / src.name
		# shutil.move would nest src inside an existing directory
		if dst.exists() or dst.is_symlink():
			raise StepError(
				message=f"step '{step.name}': destination already exists in staging directory",
				path=str(dst),
				step=step.name,
			)
		try:
			shutil.move(str(src), str(dst))
		except OSError as err:
			raise io_error(err, path=src, operation="move") from err
		logger.debug("moved %s -> %s", src, dst)
		return

	raise AssertionError(f"unhandled step variant {variant!r}")


def build_v0(opts: BuildOptions) -> BuildReport:
	staging_dir = (opts.staging_dir or default_pkgdir()).resolve()
	work_dir = (opts.work_dir or Path(os.getcwd())).resolve()

	manifest = load_manifest(opts.manifest_path, package_dir=staging_dir)
	logger.info("Building %s-%s", manifest.info.name, manifest.info.version)

	try:
		if opts.clean and staging_dir.exists():
			shutil.rmtree(staging_dir)
		staging_dir.mkdir(parents=True, exist_ok=True)
	except OSError as err:
		raise io_error(err, path=staging_dir, operation="prepare") from err

	verified: list[str] = []
	unverified: list[str] = [s.url for s in manifest.sources]
	if opts.sources_dir is not None:
		verified, unverified = verify_sources(manifest, opts.sources_dir)

	env = step_environment(manifest, staging_dir)
	steps_run: list[str] = []
	for i, step in enumerate(manifest.steps, start=1):
		logger.info("[%d/%d] %s (%s)", i, len(manifest.steps), step.name, step.kind)
		run_step(step, staging_dir=staging_dir, work_dir=work_dir, env=env, timeout=opts.step_timeout)
		steps_run.append(step.name)

	archive_path = package(staging_dir, manifest, compression=opts.compression, out_dir=opts.out_dir)
	return BuildReport(
		archive_path=archive_path,
		steps_run=steps_run,
		verified_sources=verified,
		unverified_sources=unverified,
	)
