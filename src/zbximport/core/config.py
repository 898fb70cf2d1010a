from __future__ import annotations
import copy
import os
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, List, Mapping, Sequence, Union
import yaml

from .errors import ImportConfigError
from .models import ImportOptions

_CONFIG_DIR_ENV = "ZBXIMPORT_CONFIG_DIR"
_ENV_PREFIX = "ZBXIMPORT__"

_DEFAULT_TEMPLATE_YAML = dedent(
    """
    zabbix:
      api_url: https://zabbix.example.com/api_jsonrpc.php
      api_token: ${env:ZABBIX_API_TOKEN}
      username: ""
      password: ""
      timeout: 30
      validate_certs: true

    rules:
      templates:
        createMissing: true
      maps:
        updateExisting: false
      templateLinkage:
        createMissing: true
    """
)

PathLike = Union[str, Path]


def _env_dirs() -> List[Path]:
    env_value = os.environ.get(_CONFIG_DIR_ENV, "")
    return [Path(part.strip()).expanduser() for part in env_value.split(os.pathsep) if part.strip()]


def _candidate_config_dirs() -> List[Path]:
    """Ordered list of directories to scan for configuration files."""

    directories: List[Path] = [Path.home() / ".zbximport"]

    cwd_dir = Path.cwd() / "config"
    if cwd_dir not in directories:
        directories.append(cwd_dir)

    for candidate in _env_dirs():
        if candidate not in directories:
            directories.append(candidate)

    return directories


def _candidate_config_files() -> List[Path]:
    """Fallback individual configuration files to consider."""

    candidates = [
        Path.cwd() / "zbximport.yaml",
        Path.cwd() / "zbximport.yml",
        Path.home() / ".zbximport" / "zbximport.yaml",
        Path.home() / ".zbximport" / "zbximport.yml",
    ]
    candidates += [path for path in _env_dirs() if path.suffix.lower() in {".yaml", ".yml"}]

    files: List[Path] = []
    for path in candidates:
        if path not in files:
            files.append(path)
    return files


def load_project_config(explicit_files: Sequence[PathLike] | None = None) -> Dict[str, Any]:
    """Load and merge YAML configuration files.

    Every ``*.yml``/``*.yaml`` in the candidate directories is merged in
    lexicographic order; if none exist the single-file fallbacks are tried.
    Files passed explicitly (``--config``) are merged last.

    Returns:
        Merged configuration dictionary
    """
    files: List[Path] = []
    seen: set[Path] = set()

    for directory in _candidate_config_dirs():
        if directory.exists() and directory.is_dir():
            for pattern in ("*.yml", "*.yaml"):
                for path in sorted(directory.glob(pattern)):
                    if path not in seen:
                        files.append(path)
                        seen.add(path)

    if not files:
        for candidate in _candidate_config_files():
            if candidate.exists() and candidate.is_file() and candidate not in seen:
                files.append(candidate)
                seen.add(candidate)

    for spec in explicit_files or ():
        candidate = Path(spec).expanduser()
        if not candidate.exists():
            raise ImportConfigError(f"Configuration file not found: {candidate}")
        if candidate not in seen:
            files.append(candidate)
            seen.add(candidate)

    data: Dict[str, Any] = {}
    for path in files:
        try:
            content = yaml.safe_load(path.read_text())
        except FileNotFoundError:
            continue
        except yaml.YAMLError as err:
            raise ImportConfigError(f"Invalid YAML in {path}: {err}") from err
        if content:
            deep_merge(data, content)
    return data


def deep_merge(a: dict, b: dict) -> dict:
    """Recursively merge dictionary b into dictionary a (b wins on scalars)."""
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(a.get(k), dict):
            deep_merge(a[k], v)
        else:
            a[k] = v
    return a


def env_to_overrides(env: Mapping[str, str]) -> dict:
    """Convert ZBXIMPORT__ prefixed environment variables to config overrides.

    ``ZBXIMPORT__zabbix__api_url`` becomes ``{"zabbix": {"api_url": value}}``.
    """
    out: dict = {}
    for key, value in env.items():
        if key.startswith(_ENV_PREFIX):
            path = key[len(_ENV_PREFIX):].split("__")
            current = out
            for segment in path[:-1]:
                current = current.setdefault(segment, {})
            current[path[-1]] = value
    return out


def deep_set(d: dict, dotted: str, value: str) -> None:
    """Set ``rules.templates.createMissing``-style dotted keys, creating parents."""
    current = d
    parts = dotted.split('.')
    for key in parts[:-1]:
        current = current.setdefault(key, {})
    current[parts[-1]] = value


def merge_overrides(
    cfg: dict,
    *,
    vars_file: Path | None,
    set_kv: list[str],
    env: Mapping[str, str]
) -> dict:
    """Apply overrides in order: vars file, ``--set`` pairs, environment.

    Raises:
        ImportConfigError: If a --set parameter is malformed
    """
    merged = dict(cfg)
    if vars_file and vars_file.exists():
        merged = deep_merge(merged, yaml.safe_load(vars_file.read_text()) or {})
    for item in set_kv:
        if "=" not in item:
            raise ImportConfigError(f"--set expects key=value, got {item!r}")
        key, value = item.split('=', 1)
        deep_set(merged, key.strip(), value)
    return deep_merge(merged, env_to_overrides(env))


def _resolve_token(token: str, ask: bool) -> str:
    """Resolve ``${env:VAR}`` and ``${file:/path}`` placeholders."""
    if token.startswith('${env:') and token.endswith('}'):
        return os.environ.get(token[6:-1], '')
    if token.startswith('${file:') and token.endswith('}'):
        secret_path = Path(token[7:-1]).expanduser()
        try:
            return secret_path.read_text().strip()
        except OSError as err:
            raise ImportConfigError(f"Cannot read secret file {secret_path}: {err.strerror or err}") from err
    return token if not ask else input(f"Enter secret for {token}: ")


def _walk(obj: Any, ask: bool) -> Any:
    if isinstance(obj, dict):
        return {k: _walk(v, ask) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk(x, ask) for x in obj]
    if isinstance(obj, str) and obj.startswith('${'):
        return _resolve_token(obj, ask)
    return obj


def resolve_secrets(cfg: dict, *, ask: bool) -> dict:
    """Walk the configuration tree resolving secret placeholders."""
    return _walk(cfg, ask)


def import_options(
    cfg: Mapping[str, Any],
    *,
    create_missing: bool | None = None,
    update_existing: bool | None = None,
    link_templates: bool | None = None,
) -> ImportOptions:
    """Build ImportOptions from the ``rules`` section and CLI switches.

    CLI switches left at None keep whatever the configuration says.
    """
    raw_rules = cfg.get("rules") or {}
    if not isinstance(raw_rules, Mapping):
        raise ImportConfigError("The rules section must be a mapping")
    rules = copy.deepcopy(dict(raw_rules))
    if create_missing is not None:
        deep_set(rules, "templates.createMissing", create_missing)
    if update_existing is not None:
        deep_set(rules, "maps.updateExisting", update_existing)
    if link_templates is not None:
        deep_set(rules, "templateLinkage.createMissing", link_templates)
    return ImportOptions.from_rules(rules)


def load_default_template() -> Dict[str, Any]:
    """Default configuration used by ``zbximport init``."""
    return yaml.safe_load(_DEFAULT_TEMPLATE_YAML) or {}


def write_default_config(path: Path, *, force: bool = False) -> Path:
    """Write the default configuration template to ``path``.

    Raises:
        ImportConfigError: If the file exists and ``force`` is False
    """
    if path.exists() and not force:
        raise ImportConfigError(f"{path} already exists (use --force to overwrite)")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_DEFAULT_TEMPLATE_YAML.lstrip())
    return path
