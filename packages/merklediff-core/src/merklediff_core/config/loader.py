"""Locate, parse and validate merklediff.yaml."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import MerkleDiffConfig

CONFIG_FILENAME = "merklediff.yaml"

_ENV_REF = re.compile(r"\$\{(\w+)\}")


def config_search_paths(cli_path: str | None = None) -> list[Path]:
    """Candidate config files, most specific first."""
    paths = [Path(cli_path)] if cli_path else []
    paths.append(Path(".") / CONFIG_FILENAME)
    paths.append(Path.home() / ".merklediff" / "config.yaml")
    return paths


def _read_yaml(path: Path) -> object:
    try:
        return yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e


def _build(path: Path, raw: object) -> MerkleDiffConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid config in {path}: top level must be a mapping")
    try:
        return MerkleDiffConfig.model_validate(_expand_env_vars(raw))
    except ValidationError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e


def load_config(cli_path: str | None = None) -> MerkleDiffConfig:
    """Return the first non-empty config found, or the defaults.

    An explicit *cli_path* must exist. Files that are empty are skipped so
    the next candidate applies.
    """
    if cli_path and not Path(cli_path).exists():
        raise ValueError(f"Config file not found: {cli_path}")

    for path in filter(Path.exists, config_search_paths(cli_path)):
        raw = _read_yaml(path)
        if raw is not None:
            return _build(path, raw)
    return MerkleDiffConfig()


def _expand_env_vars(value: object) -> object:
    """Substitute ``${NAME}`` from the environment; unset names become ""."""
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


# Written by `merklediff config init`
DEFAULT_CONFIG_TEMPLATE = """\
# merklediff configuration
#
# Both peers must agree on the tree and refine sections. Nothing here is
# exchanged over the wire, so a mismatch produces wrong answers.

tree:
  block_size: 1048576          # bytes per leaf
  algorithm: "sha256"          # sha256 | blake2b | xxh64 | xxh128

refine:
  enabled: true
  block_sizes: [4096, 1]       # strictly decreasing, each below tree.block_size

network:
  default_port: 4040
  # timeout: 30                # seconds; unset blocks forever
  backlog: 1

log_level: "warn"              # debug | info | warn | error
"""
