# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from peach.archive import Compression, list_archive
from peach.build import BuildOptions, build_v0, run_step, verify_sources
from peach.errors import ChecksumMismatchError, StepError, VariableError
from peach.manifest import MoveStep, Step, parse_manifest


def _write_file(path: Path, text: str) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text, encoding="utf-8")


def _sha(data: bytes) -> str:
	return "sha256:" + hashlib.sha256(data).hexdigest()


def test_build_runs_steps_and_packages(tmp_path: Path) -> None:
	work = tmp_path / "work"
	_write_file(work / "README", "readme\n")
	manifest = tmp_path / "peach.toml"
	_write_file(
		manifest,
		"""
[info]
name = "foo"
version = "1.0"
description = "test package"
license = "MIT"

[[steps]]
name = "install"
runner = "shell"
command = "mkdir -p %{pkgdir}/bin && printf 'v%{version}' > %{pkgdir}/bin/foo"

[[steps]]
name = "env"
runner = "shell"
command = "printf '%s' \\"$PEACH_VERSION\\" > \\"$PEACH_PKGDIR/VERSION\\""

[[steps]]
name = "docs"
path = "README"
""".lstrip(),
	)
	opts = BuildOptions(
		manifest_path=manifest,
		staging_dir=tmp_path / "stage",
		work_dir=work,
		out_dir=tmp_path,
		compression=Compression.ZSTD,
	)
	report = build_v0(opts)
	assert report.archive_path == tmp_path / "foo-1.0.peach"
	assert report.steps_run == ["install", "env", "docs"]
	assert (tmp_path / "stage" / "bin" / "foo").read_text(encoding="utf-8") == "v1.0"
	assert (tmp_path / "stage" / "VERSION").read_text(encoding="utf-8") == "1.0"
	assert not (work / "README").exists()
	assert set(list_archive(report.archive_path)) == {"README", "VERSION", "bin", "bin/foo"}
	assert report.to_dict()["steps_run"] == ["install", "env", "docs"]


def test_failing_step_stops_the_build(tmp_path: Path) -> None:
	manifest = tmp_path / "peach.toml"
	_write_file(
		manifest,
		"""
[info]
name = "foo"
version = "1.0"
description = ""
license = "MIT"

[[steps]]
name = "broken"
runner = "shell"
command = "exit 7"

[[steps]]
name = "never"
runner = "shell"
command = "touch never"
""".lstrip(),
	)
	with pytest.raises(StepError) as excinfo:
		build_v0(BuildOptions(manifest_path=manifest, staging_dir=tmp_path / "stage", work_dir=tmp_path, out_dir=tmp_path))
	assert excinfo.value.step == "broken"
	assert excinfo.value.exit_status == 7
	assert not (tmp_path / "never").exists()
	assert not (tmp_path / "foo-1.0.peach").exists()


def test_clean_removes_stale_staging_content(tmp_path: Path) -> None:
	manifest = tmp_path / "peach.toml"
	_write_file(manifest, '[info]\nname = "foo"\nversion = "1.0"\ndescription = ""\nlicense = "MIT"\n')
	stage = tmp_path / "stage"
	_write_file(stage / "stale", "old")
	report = build_v0(BuildOptions(manifest_path=manifest, staging_dir=stage, out_dir=tmp_path, clean=True))
	assert list_archive(report.archive_path) == []


def test_undefined_variable_aborts_before_running_anything(tmp_path: Path) -> None:
	manifest = tmp_path / "peach.toml"
	_write_file(
		manifest,
		'[info]\nname = "foo"\nversion = "1.0"\ndescription = ""\nlicense = "MIT"\n\n'
		'[[steps]]\nname = "s"\nrunner = "shell"\ncommand = "touch %{srcdir}/x"\n',
	)
	with pytest.raises(VariableError) as excinfo:
		build_v0(BuildOptions(manifest_path=manifest, staging_dir=tmp_path / "stage", out_dir=tmp_path))
	assert excinfo.value.path == str(manifest)
	assert not (tmp_path / "stage").exists()


def _sources_manifest(data: bytes, checksum: str | None = None):
	return parse_manifest(
		'[info]\nname = "foo"\nversion = "1.0"\ndescription = ""\nlicense = "MIT"\n\n'
		'[[sources]]\nurl = "https://example.org/foo-%{version}.tar.gz"\n'
		f'checksum = "{checksum or _sha(data)}"\n\n'
		'[[sources]]\nurl = "https://example.org/extra.tar.gz?dl=1"\nchecksum = "blake3:00"\n'
	)


def test_verify_sources_checks_present_files(tmp_path: Path) -> None:
	data = b"tarball"
	(tmp_path / "foo-1.0.tar.gz").write_bytes(data)
	verified, missing = verify_sources(_sources_manifest(data), tmp_path)
	assert verified == ["https://example.org/foo-1.0.tar.gz"]
	assert missing == ["https://example.org/extra.tar.gz?dl=1"]


def test_verify_sources_mismatch(tmp_path: Path) -> None:
	(tmp_path / "foo-1.0.tar.gz").write_bytes(b"tampered")
	with pytest.raises(ChecksumMismatchError) as excinfo:
		verify_sources(_sources_manifest(b"tarball"), tmp_path)
	assert excinfo.value.path == str(tmp_path / "foo-1.0.tar.gz")


def test_move_step_missing_path(tmp_path: Path) -> None:
	step = Step(name="docs", variant=MoveStep(path="nope"))
	with pytest.raises(StepError, match="does not exist"):
		run_step(step, staging_dir=tmp_path / "stage", work_dir=tmp_path)


def test_move_step_moves_directories(tmp_path: Path) -> None:
	_write_file(tmp_path / "work" / "share" / "a.txt", "a")
	stage = tmp_path / "stage"
	stage.mkdir()
	run_step(Step(name="share", variant=MoveStep(path="share")), staging_dir=stage, work_dir=tmp_path / "work")
	assert (stage / "share" / "a.txt").read_text(encoding="utf-8") == "a"


def test_step_timeout_is_reported_with_step_name(tmp_path: Path) -> None:
	manifest = tmp_path / "peach.toml"
	_write_file(
		manifest,
		'[info]\nname = "foo"\nversion = "1.0"\ndescription = ""\nlicense = "MIT"\n\n'
		'[[steps]]\nname = "slow"\nrunner = "shell"\ncommand = "sleep 5"\n',
	)
	opts = BuildOptions(manifest_path=manifest, staging_dir=tmp_path / "stage", out_dir=tmp_path, step_timeout=0.2)
	with pytest.raises(StepError) as excinfo:
		build_v0(opts)
	assert excinfo.value.step == "slow"


def test_move_step_refuses_to_nest_into_existing_destination(tmp_path: Path) -> None:
	work = tmp_path / "work"
	_write_file(work / "a" / "bin" / "x", "x")
	_write_file(work / "b" / "bin" / "y", "y")
	stage = tmp_path / "stage"
	stage.mkdir()
	run_step(Step(name="first", variant=MoveStep(path="a/bin")), staging_dir=stage, work_dir=work)
	with pytest.raises(StepError, match="already exists") as excinfo:
		run_step(Step(name="second", variant=MoveStep(path="b/bin")), staging_dir=stage, work_dir=work)
	assert excinfo.value.step == "second"
	assert excinfo.value.path == str(stage / "bin")
	assert sorted(p.relative_to(stage).as_posix() for p in stage.rglob("*")) == ["bin", "bin/x"]
	assert (work / "b" / "bin" / "y").exists()
