"""Config loading for KeyDeck.

Reads `.keydeck/config.yaml` (or `~/.keydeck/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field, or missing
Record Store credentials. If no config file is found, defaults are used and
the store credentials must come from the environment.

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. KEYDECK_CONFIG environment variable (if set)
  3. `.keydeck/config.yaml` (working directory — for development)
  4. `~/.keydeck/config.yaml` (home directory — for deployments)

Environment variable overrides (always win over the file):
  SUPABASE_URL / NEXT_PUBLIC_SUPABASE_URL            — store.url
  SUPABASE_ANON_KEY / NEXT_PUBLIC_SUPABASE_ANON_KEY  — store.key
  KEYDECK_STORE_BACKEND                              — store.backend
  KEYDECK_SQLITE_PATH                                — store.sqlite_path
  KEYDECK_PORT                                       — server.port
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, NoReturn, Optional, TypeVar

import yaml

from keydeck.constants import DEFAULT_TABLE_NAME, DEFAULT_VALIDATION_DELAY_MS, LIST_TIMEOUT_S
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)

_N = TypeVar("_N", int, float)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_STORE_BACKENDS: frozenset[str] = frozenset({"supabase", "sqlite"})

# "auto" resolves slim vs rich once, from the live table
VALID_SCHEMA_MODES: frozenset[str] = frozenset({"slim", "rich", "auto"})

DEFAULT_CONFIG_PATHS = [
    ".keydeck/config.yaml",
    os.path.expanduser("~/.keydeck/config.yaml"),
]

# First match wins; NEXT_PUBLIC_* names are accepted from an existing .env.local
_URL_ENV_VARS = ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
_KEY_ENV_VARS = ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class StoreConfig:
    """Record Store connection and schema mapping.

    backend:     "supabase" (hosted table) | "sqlite" (local development table)
    url / key:   Supabase project URL and anonymous API key
    schema:      "slim" | "rich" | "auto"
    columns:     per-deployment column-name overrides, canonical field → column
    """

    backend: str = "supabase"
    url: Optional[str] = None
    key: Optional[str] = None
    table: str = DEFAULT_TABLE_NAME
    schema: str = "auto"
    columns: dict[str, str] = field(default_factory=dict)
    timeout_s: float = LIST_TIMEOUT_S
    sqlite_path: str = "~/.keydeck/keys.db"


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 4343


@dataclass
class ValidationConfig:
    """Validation playground settings."""

    delay_ms: int = DEFAULT_VALIDATION_DELAY_MS


@dataclass
class Config:
    """Root configuration object populated from .keydeck/config.yaml."""

    version: int = SUPPORTED_CONFIG_VERSION
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On invalid store.backend or store.schema values.
        """
        # ── Store ─────────────────────────────────────────────────────────────
        store_raw = raw.get("store", {}) or {}
        backend = store_raw.get("backend", "supabase")
        if backend not in VALID_STORE_BACKENDS:
            _fatal(
                f"CONFIG ERROR: Invalid store.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
            )
        schema = store_raw.get("schema", "auto")
        if schema not in VALID_SCHEMA_MODES:
            _fatal(
                f"CONFIG ERROR: Invalid store.schema: '{schema}'. "
                f"Supported values: {sorted(VALID_SCHEMA_MODES)}."
            )
        columns = store_raw.get("columns", {}) or {}
        if not isinstance(columns, dict):
            _fatal("CONFIG ERROR: store.columns must be a mapping of field: column.")
        store = StoreConfig(
            backend=backend,
            url=store_raw.get("url"),
            key=store_raw.get("key"),
            table=store_raw.get("table", DEFAULT_TABLE_NAME),
            schema=schema,
            columns={str(k): str(v) for k, v in columns.items()},
            timeout_s=_as_number(
                store_raw.get("timeout_s", LIST_TIMEOUT_S), "store.timeout_s", float
            ),
            sqlite_path=store_raw.get("sqlite_path", "~/.keydeck/keys.db"),
        )

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 4343),
        )

        # ── Validation playground ─────────────────────────────────────────────
        validation_raw = raw.get("validation", {}) or {}
        validation = ValidationConfig(
            delay_ms=_as_number(
                validation_raw.get("delay_ms", DEFAULT_VALIDATION_DELAY_MS), "validation.delay_ms", int
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            store=store,
            server=server,
            validation=validation,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate KeyDeck configuration.

    If no file is found, returns default Config with env overrides applied.
    If a file is found but invalid, writes the error to stderr and raises
    SystemExit(1).

    Missing Record Store configuration is fatal: with the supabase backend,
    both a URL and an anonymous key must be present after env overrides,
    otherwise the dashboard refuses to start.

    Raises:
        SystemExit(1): On YAML parse error, missing/unsupported ``version``,
                       invalid store settings, invalid ``KEYDECK_PORT``, or
                       missing store credentials.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("KEYDECK_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("no_config_file_found", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        _require_store_credentials(config)
        return config

    logger.info("loading_config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fatal(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "KeyDeck refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fatal(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fatal(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fatal(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fatal(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fatal(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)
    _require_store_credentials(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: KeyDeck is configured to bind on 0.0.0.0 (all interfaces). "
            "The dashboard has no login of its own; use server.host: '127.0.0.1'."
        )

    logger.info(
        "config_loaded",
        path=found_path,
        version=config.version,
        store_backend=config.store.backend,
        store_schema=config.store.schema,
    )
    return config


def _first_env(names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If KEYDECK_PORT or KEYDECK_STORE_BACKEND is invalid.
    """
    url = _first_env(_URL_ENV_VARS)
    if url:
        config.store.url = url
    key = _first_env(_KEY_ENV_VARS)
    if key:
        config.store.key = key

    env_backend = os.environ.get("KEYDECK_STORE_BACKEND")
    if env_backend is not None:
        if env_backend not in VALID_STORE_BACKENDS:
            _fatal(
                f"CONFIG ERROR: KEYDECK_STORE_BACKEND is not a valid backend: '{env_backend}'. "
                f"Supported values: {sorted(VALID_STORE_BACKENDS)}."
            )
        config.store.backend = env_backend

    env_sqlite = os.environ.get("KEYDECK_SQLITE_PATH")
    if env_sqlite:
        config.store.sqlite_path = env_sqlite

    env_port = os.environ.get("KEYDECK_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fatal(
                f"CONFIG ERROR: KEYDECK_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )


def _require_store_credentials(config: Config) -> None:
    """Refuse to start when the hosted Record Store is not configured."""
    if config.store.backend != "supabase":
        return
    missing = [
        label
        for label, value in (("SUPABASE_URL", config.store.url), ("SUPABASE_ANON_KEY", config.store.key))
        if not value
    ]
    if missing:
        logger.error(
            "store_config_missing",
            url="set" if config.store.url else "missing",
            key="set" if config.store.key else "missing",
        )
        _fatal(
            f"CONFIG ERROR: Missing Supabase configuration: {', '.join(missing)}.\n"
            "Set them in the environment (or store.url / store.key in the config file)."
        )


def _fatal(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _as_number(value: object, name: str, kind: Callable[[Any], _N]) -> _N:
    try:
        return kind(value)
    except (TypeError, ValueError):
        _fatal(f"CONFIG ERROR: {name} must be a number: '{value}'")
