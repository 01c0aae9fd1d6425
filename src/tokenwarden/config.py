"""Configuration loading with XDG paths, atomic writes, and precedence resolution.

This module turns the various configuration inputs into a single validated
:class:`~tokenwarden.models.EngineConfig`:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.tokenwarden/`` on macOS and Windows. See :func:`get_config_dir`
  and :func:`get_data_dir`.
* **JSON config** -- an ``EngineConfig`` serialised as JSON, either at an
  explicit path or at ``<config_dir>/config.json``. See :func:`load_config`
  and :func:`save_config`.
* **Environment scheme** -- ``SECRET_STORE``, ``NUM_SECRETS``,
  ``SECRET_ID_<i>`` and friends, read from the process environment or a
  ``conf.env`` file. See :func:`config_from_env` and :func:`load_env_file`.
* **Precedence resolution** -- :func:`resolve_config` picks the source.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from dotenv import dotenv_values
from pydantic import ValidationError

from tokenwarden.exceptions import ConfigError
from tokenwarden.models import (
    Credential,
    EngineConfig,
    RetryConfig,
    SecretLocation,
    SecretRef,
    TokenKind,
)

logger = logging.getLogger(__name__)

_APP_NAME = "tokenwarden"
_CONFIG_FILENAME = "config.json"
DEFAULT_ENV_FILE = "./conf.env"

ENV_TEMPLATE = (
    "# SECRET STORE\n"
    "SECRET_STORE=\n"
    "NUM_SECRETS=1\n"
    "# SECRET MANAGER\n"
    "PROJECT_ID=\n"
    "SECRET_ID_1=\n"
    "SECRET_VERSION_1=\n"
    "SECRET_ID_2=\n"
    "SECRET_VERSION_2=\n"
    "# AUTH\n"
    "TOKEN_URL=\n"
)
"""Contents written by :func:`write_env_template`."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tokenwarden/`` (default
    ``~/.config/tokenwarden/``). On macOS/Windows: ``~/.tokenwarden/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/tokenwarden/`` (default
    ``~/.local/share/tokenwarden/``). On macOS/Windows: ``~/.tokenwarden/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path() -> Path:
    """Return ``<config_dir>/config.json``."""
    return get_config_dir() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically using a temp file and rename.

    The temp file lives in the same directory as *path* so ``os.replace``
    is an atomic rename on POSIX. It is removed again on any failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- JSON config ---


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load and validate an :class:`EngineConfig` from a JSON file.

    Raises:
        ConfigError: If the file is missing, is not valid JSON, or fails
            validation.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return EngineConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: EngineConfig, path: Optional[Union[str, Path]] = None) -> Path:
    """Persist *config* as JSON, atomically.

    Args:
        config: The configuration to save.
        path: Target file. Defaults to :func:`default_config_path`.

    Returns:
        The path written to.
    """
    target = Path(path).expanduser() if path is not None else default_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(target, json.dumps(data, indent=2) + "\n")
    return target


# --- Environment scheme ---


def _required(environ: Mapping[str, str], name: str) -> str:
    value = (environ.get(name) or "").strip()
    if not value:
        raise ConfigError(f"Required variable {name} is not set")
    return value


def _optional(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = (environ.get(name) or "").strip()
    return value or None


def _number(environ: Mapping[str, str], name: str, cast: Any) -> Any:
    raw = _optional(environ, name)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from exc


def _parse_offsets(name: str, raw: str) -> tuple[float, ...]:
    try:
        return tuple(float(part) for part in raw.split(",") if part.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a comma-separated list of seconds, got '{raw}'") from exc


def credential_id(index: int) -> str:
    """Return the credential id (and cache slot) of the 1-based *index*."""
    return "primary" if index == 1 else f"secret-{index}"


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Build an :class:`EngineConfig` from environment variables.

    Recognised variables (indexes are 1-based)::

        SECRET_STORE        GCP | AWS | ENV | FILE          (required)
        NUM_SECRETS         number of secrets, >= 1         (required)
        PROJECT_ID          GCP project                     (required for GCP)
        AWS_REGION          AWS region override
        TOKEN_URL           default token endpoint          (required)
        TOKEN_FIELD         default token field path        (required)
        SECRET_ID_<i>       secret identifier               (required)
        SECRET_VERSION_<i>  secret version (GCP default "1")
        TOKEN_URL_<i>       per-secret endpoint override. APIKey secrets
                            without one are published verbatim
        TOKEN_FIELD_<i>     per-secret field override
        TOKEN_TYPE_<i>      Bearer | APIKey (default Bearer)
        STAGGER_OFFSETS_<i> comma-separated seconds, e.g. "0,150"
        FALLBACK_INTERVAL   seconds before retrying a failed refresh
        RETRY_MAX           retries per exchange
        RETRY_WAIT_MIN      minimum backoff in seconds

    Raises:
        ConfigError: If a required variable is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ

    store = _required(env, "SECRET_STORE")
    try:
        location = SecretLocation(store)
    except ValueError as exc:
        choices = ", ".join(m.value for m in SecretLocation)
        raise ConfigError(f"SECRET_STORE must be one of {choices}, got '{store}'") from exc

    count = _number(env, "NUM_SECRETS", int)
    if count is None or count < 1:
        raise ConfigError("NUM_SECRETS must be a positive integer")

    default_url = _required(env, "TOKEN_URL")
    default_field = _required(env, "TOKEN_FIELD")

    credentials = []
    for index in range(1, count + 1):
        version = _optional(env, f"SECRET_VERSION_{index}")
        if version is None and location == SecretLocation.GCP:
            version = "1"

        raw_type = _optional(env, f"TOKEN_TYPE_{index}") or TokenKind.BEARER.value
        try:
            kind = TokenKind(raw_type)
        except ValueError as exc:
            raise ConfigError(
                f"TOKEN_TYPE_{index} must be Bearer or APIKey, got '{raw_type}'"
            ) from exc

        fields: dict[str, Any] = {
            "id": credential_id(index),
            "secret": SecretRef(identifier=_required(env, f"SECRET_ID_{index}"), version=version),
            "token_url": _optional(env, f"TOKEN_URL_{index}") or (
                default_url if kind == TokenKind.BEARER else None
            ),
            "token_field": _optional(env, f"TOKEN_FIELD_{index}") or default_field,
            "token_type": kind,
        }
        raw_offsets = _optional(env, f"STAGGER_OFFSETS_{index}")
        if raw_offsets is not None:
            fields["stagger_offsets"] = _parse_offsets(f"STAGGER_OFFSETS_{index}", raw_offsets)
        try:
            credentials.append(Credential(**fields))
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings for secret {index}: {exc}") from exc

    retry_fields: dict[str, Any] = {}
    retry_max = _number(env, "RETRY_MAX", int)
    if retry_max is not None:
        retry_fields["max_retries"] = retry_max
    wait_min = _number(env, "RETRY_WAIT_MIN", float)
    if wait_min is not None:
        retry_fields["wait_min"] = wait_min

    config_fields: dict[str, Any] = {
        "secret_location": location,
        "project_id": _optional(env, "PROJECT_ID"),
        "aws_region": _optional(env, "AWS_REGION"),
        "credentials": tuple(credentials),
    }
    fallback = _number(env, "FALLBACK_INTERVAL", float)
    if fallback is not None:
        config_fields["fallback_interval"] = fallback

    try:
        config_fields["retry"] = RetryConfig(**retry_fields)
        return EngineConfig(**config_fields)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_env_file(path: Union[str, Path]) -> dict[str, str]:
    """Read a ``conf.env`` file into a dict.

    Keys without a value (``KEY`` or ``KEY=``) are returned as empty
    strings, which :func:`config_from_env` treats as unset.
    """
    values = dotenv_values(Path(path).expanduser())
    return {key: value or "" for key, value in values.items()}


def write_env_template(path: Union[str, Path] = DEFAULT_ENV_FILE, force: bool = False) -> Path:
    """Write a blank ``conf.env`` template to *path*.

    Raises:
        ConfigError: If *path* exists and *force* is false.
    """
    target = Path(path).expanduser()
    if target.exists() and not force:
        raise ConfigError(f"{target} already exists (use --force to overwrite)")
    _atomic_write(target, ENV_TEMPLATE)
    logger.info("Wrote configuration template to %s", target)
    return target


# --- Precedence resolution ---


def resolve_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = DEFAULT_ENV_FILE,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. An explicit JSON ``config_path``.
        2. ``SECRET_STORE`` set in the process environment.
        3. An existing ``env_file``, with process variables taking
           precedence over the file's.
        4. The JSON config at ``<config_dir>/config.json``.

    If none of these exist, a blank template is written to ``env_file`` and
    :class:`ConfigError` is raised so the operator can fill it in.

    Raises:
        ConfigError: If no configuration is found or the chosen one is invalid.
    """
    env = os.environ if environ is None else environ

    if config_path is not None:
        logger.debug("Loading configuration from %s", config_path)
        return load_config(config_path)

    if _optional(env, "SECRET_STORE"):
        logger.debug("Loading configuration from the environment")
        return config_from_env(env)

    if env_file is not None and Path(env_file).expanduser().is_file():
        logger.debug("Loading configuration from %s", env_file)
        merged = load_env_file(env_file)
        merged.update({k: v for k, v in env.items() if v})
        return config_from_env(merged)

    default_path = default_config_path()
    if default_path.is_file():
        logger.debug("Loading configuration from %s", default_path)
        return load_config(default_path)

    if env_file is None:
        raise ConfigError("No configuration found")
    template = write_env_template(env_file)
    raise ConfigError(f"No configuration found; a template was written to {template}")
