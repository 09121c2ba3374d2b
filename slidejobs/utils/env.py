"""Minimal .env support so local runs pick up SLIDEJOBS_* settings."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path at the repository root."""
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def read_env_file(path: Path) -> dict[str, str]:
  """Parse KEY=VALUE lines, skipping blanks, comments and malformed entries."""
  if not path.is_file():
    return {}

  values: dict[str, str] = {}
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    values[key] = _unquote(value.strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> int:
  """Export values from a .env file and return how many were applied."""
  applied = 0
  for key, value in read_env_file(path).items():
    # Real environment variables win unless the caller forces the file.
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied += 1
  return applied
