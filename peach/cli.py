# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from peach import commands
from peach.archive import Compression
from peach.build import BuildOptions, build_v0
from peach.checksum import ALGORITHMS, compute_checksum, verify
from peach.errors import PeachError
from peach.logging_utils import configure_logging


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(prog="peach", description="peach package builder")
	p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	sub = p.add_subparsers(dest="cmd", required=True)

	build = sub.add_parser("build", help="Build a package from a manifest")
	build.add_argument("manifest", type=Path, help="Path to the TOML build manifest")
	build.add_argument(
		"--staging-dir",
		type=Path,
		default=None,
		help="Staging directory, exposed as %%{pkgdir} (default: ./package)",
	)
	build.add_argument(
		"--sources-dir",
		type=Path,
		default=None,
		help="Directory holding downloaded sources to verify before building",
	)
	build.add_argument("--work-dir", type=Path, default=None, help="Working directory for steps (default: .)")
	build.add_argument("--out-dir", type=Path, default=None, help="Where to write the archive (default: .)")
	build.add_argument(
		"--compression",
		choices=[c.value for c in Compression],
		default=Compression.GZIP.value,
		help="Archive compression (default: gzip)",
	)
	build.add_argument("--step-timeout", type=float, default=None, help="Seconds before a command step is killed")
	build.add_argument("--clean", action="store_true", help="Remove the staging directory before building")
	build.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")

	ver = sub.add_parser("verify", help="Check a file against a '<algorithm>:<hex>' checksum")
	ver.add_argument("file", type=Path)
	ver.add_argument("checksum", type=str)

	chk = sub.add_parser("checksum", help="Print the '<algorithm>:<hex>' checksum of a file")
	chk.add_argument("file", type=Path)
	chk.add_argument("--algorithm", choices=sorted(ALGORITHMS), default="sha256")

	info = sub.add_parser("info", help="Show information about an installed package")
	info.add_argument("name")

	uninstall = sub.add_parser("uninstall", help="Remove an installed package")
	uninstall.add_argument("name")
	return p


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args = p.parse_args(argv)
	configure_logging(logging.DEBUG if args.verbose else logging.INFO)

	try:
		if args.cmd == "build":
			opts = BuildOptions(
				manifest_path=args.manifest,
				staging_dir=args.staging_dir,
				sources_dir=args.sources_dir,
				work_dir=args.work_dir,
				out_dir=args.out_dir,
				compression=Compression(args.compression),
				step_timeout=args.step_timeout,
				clean=bool(args.clean),
			)
			report = build_v0(opts)
			if args.json:
				print(json.dumps({"ok": True, **report.to_dict()}, sort_keys=True, separators=(",", ":")))
			else:
				print(report.archive_path)
			return 0

		if args.cmd == "verify":
			if verify(args.file, args.checksum):
				print(f"{args.file}: OK")
				return 0
			print(f"{args.file}: FAILED", file=sys.stderr)
			return 1

		if args.cmd == "checksum":
			print(compute_checksum(args.file, args.algorithm))
			return 0

		if args.cmd == "info":
			commands.info(args.name)
			return 0

		if args.cmd == "uninstall":
			commands.uninstall(args.name)
			return 0
	except PeachError as err:
		if getattr(args, "json", False):
			print(json.dumps({"ok": False, "error": err.to_dict()}, sort_keys=True, separators=(",", ":")))
		print(err.format_human(), file=sys.stderr)
		return 2

	raise AssertionError("unreachable")
