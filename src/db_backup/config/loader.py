"""Load backup configuration from TOML and environment variables."""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_backup.config.models import BackupConfig
from db_backup.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_overrides(env_prefix: str) -> tuple[dict, dict]:
    """Collect top-level and logging overrides from the environment."""
    env = os.environ
    top: dict = {}
    log: dict = {}

    if value := env.get(f"{env_prefix}PATH_PROJECT_RESOURCES"):
        top["resources_path"] = value
    if value := env.get(f"{env_prefix}DATABASE_URL"):
        top["database_url"] = value
    if value := env.get(f"{env_prefix}APP_ENV"):
        top["environment"] = value
    if value := env.get(f"{env_prefix}PRESERVE_TEMP_FILES"):
        top["preserve_temp_files"] = value.strip().lower() in _TRUE_VALUES

    if value := env.get(f"{env_prefix}NAME_APP"):
        log["app_name"] = value
    if value := env.get(f"{env_prefix}PATH_TO_LOGS"):
        log["logs_path"] = value
    if value := env.get(f"{env_prefix}LOG_LEVEL"):
        log["level"] = value
    if value := env.get(f"{env_prefix}LOG_MAX_SIZE"):
        log["max_size_mb"] = value
    if value := env.get(f"{env_prefix}LOG_MAX_FILES"):
        log["max_files"] = value

    return top, log


def load_backup_config(
    config_path: Path | None = None,
    env_prefix: str = "",
) -> BackupConfig:
    """Load backup configuration.

    Reads ``backup.toml`` (explicit path, or ``Path.cwd() / "backup.toml"``
    when present) and then applies environment overrides such as
    ``{env_prefix}PATH_PROJECT_RESOURCES`` and ``{env_prefix}DATABASE_URL``.

    TOML layout::

        resources_path = "/srv/app/resources"
        database_url = "postgresql://localhost/app"

        [logging]
        logs_path = "/var/log/app"

        [[tables]]
        name = "Users"

        [[tables]]
        name = "Orders"
        parents = [{ table = "Users", field = "userId" }]

    Args:
        config_path: Path to a TOML file.  When given it must exist.
        env_prefix: Prefix for environment variable lookup.

    Returns:
        Validated ``BackupConfig``.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
        ConfigurationError: If the base resources path is not configured,
            or the configuration is otherwise invalid.
    """
    data: dict = {}
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Backup config not found: {config_path}")
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    else:
        default_path = Path.cwd() / "backup.toml"
        if default_path.exists():
            with open(default_path, "rb") as f:
                data = tomllib.load(f)

    tables = data.pop("tables", [])
    logging_data = dict(data.pop("logging", {}))

    top, log = _env_overrides(env_prefix)
    data.update(top)
    logging_data.update(log)

    if not data.get("resources_path"):
        raise ConfigurationError(
            f"{env_prefix}PATH_PROJECT_RESOURCES environment variable is not set "
            f"(or resources_path missing from config)"
        )

    try:
        return BackupConfig(
            **data,
            registry={"tables": tables},
            logging=logging_data,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid backup configuration: {e}") from e
