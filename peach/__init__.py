# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
peach: manifest-driven package builds.

Modules:
  variables: `%{name}` placeholder substitution
  manifest:  TOML manifest model and parser
  checksum:  typed source checksums (blake3, sha256)
  archive:   `<name>-<version>.peach` archive writer
  build:     build driver (verify, run steps, package)
"""

__version__ = "0.1.0"

__all__ = ["archive", "build", "checksum", "manifest", "variables"]
