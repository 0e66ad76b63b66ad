"""
Configuration for BKM.

Settings are layered, lowest priority first:

1. Built-in defaults
2. User file (~/.config/bkm/config.toml)
3. The first local file found in the working directory
   (bkm.toml, .bkmrc or .bkm/config.toml)
4. A file passed with ``--config``
5. ``BKM_*`` environment variables
6. Command-line flags
"""
import os
import tomli
import tomli_w
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

ENV_PREFIX = "BKM_"
LOCAL_CONFIG_NAMES = ("bkm.toml", ".bkmrc", ".bkm/config.toml")


def user_config_path() -> Path:
    return Path.home() / ".config" / "bkm" / "config.toml"


def config_files(config_file: Optional[Path] = None) -> Iterator[Path]:
    """Yield the config files to merge, lowest priority first."""
    if user_config_path().exists():
        yield user_config_path()

    for name in LOCAL_CONFIG_NAMES:
        local = Path.cwd() / name
        if local.exists():
            yield local
            break

    if config_file is not None and config_file.exists():
        yield config_file


def coerce_value(current: Any, raw: str) -> Any:
    """Convert a string setting to the type of the value it replaces."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


@dataclass
class BkmConfig:
    """Effective BKM settings."""

    # Storage
    database: str = "bkm.db"
    database_url: Optional[str] = None  # overrides database
    database_echo: bool = False

    # Mutation queue
    queue_maxsize: int = 256
    batch_saves: bool = True
    stop_timeout: float = 30.0

    # CLI output
    output_format: str = "table"  # table, json, plain
    export_pretty: bool = True
    color_output: bool = True
    log_level: str = "INFO"

    @classmethod
    def setting_names(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "BkmConfig":
        """Build the configuration from files and the environment."""
        config = cls()
        for path in config_files(config_file):
            with open(path, "rb") as f:
                config.update(tomli.load(f))
        config.update_from_env(os.environ)
        config.database = os.path.expanduser(os.path.expandvars(config.database))
        return config

    def update(self, data: Mapping[str, Any]) -> None:
        """Take over known keys from a parsed config file; others are ignored."""
        known = self.setting_names()
        for key, value in data.items():
            if key in known:
                setattr(self, key, value)

    def update_from_env(self, environ: Mapping[str, str]) -> None:
        for name, raw in environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            key = name[len(ENV_PREFIX):].lower()
            if key in self.setting_names():
                self.set(key, raw)

    def set(self, key: str, raw: str) -> None:
        """
        Set one setting from its string form.

        Raises:
            KeyError: If ``key`` is not a BKM setting
        """
        if key not in self.setting_names():
            raise KeyError(key)
        setattr(self, key, coerce_value(getattr(self, key), raw))

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the settings as TOML (to the user file by default)."""
        path = path or user_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        # TOML has no null
        data: Dict[str, Any] = {key: value for key, value in asdict(self).items() if value is not None}
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
        return path

    def get_database_path(self) -> Path:
        path = Path(self.database)
        return path if path.is_absolute() else Path.cwd() / path


# Process-wide configuration, used by the CLI only
_config: Optional[BkmConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> BkmConfig:
    global _config
    if _config is None or reload:
        _config = BkmConfig.load(config_file)
    return _config


def init_config(database: Optional[str] = None, config_file: Optional[Path] = None, **overrides) -> BkmConfig:
    """
    Load the configuration and apply command-line flags on top.

    Args:
        database: ``--db`` value
        config_file: ``--config`` value
        **overrides: Other settings; None means "flag not given"
    """
    config = get_config(reload=config_file is not None, config_file=config_file)
    if database:
        config.database = database
    config.update({key: value for key, value in overrides.items() if value is not None})
    return config
