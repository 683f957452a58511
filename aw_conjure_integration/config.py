"""Configuration management for aw-conjure-integration."""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from platformdirs import user_config_dir, user_log_dir

from .auth.keychain import KeychainManager

__all__ = [
    "Config",
    "ConfigError",
    "GroupBy",
    "Settings",
    "AWSettings",
    "load_pat",
    "load_settings",
    "read_json",
    "setup_logging",
    "validate_bin_size",
    "validate_pat",
    "CONJURE_API_URL",
    "TICK_INTERVAL_SECONDS",
]

logger = logging.getLogger(__name__)

APP_NAME = "aw-conjure-integration"

# conjure.so GraphQL endpoint
CONJURE_API_URL = "https://api.conjure.so/graphql"

# ActivityWatch defaults
DEFAULT_AW_HOST = "localhost"
DEFAULT_AW_PORT = 5600

# How often to check whether a new period has completed
TICK_INTERVAL_SECONDS = 60

DEFAULT_BIN_SIZE = 15

PAT_PREFIX = "cnjrp_"
PAT_LENGTH = 64

BIN_SIZE_ERROR = (
    "A valid bin size must be between 5 and 60 minutes and evenly divide an hour!"
)


class ConfigError(Exception):
    """Configuration could not be read or is invalid."""

    pass


class GroupBy(Enum):
    """How events are merged before upload."""

    CATEGORY = "Category"
    APP_AND_TITLE = "AppAndTitle"


def validate_bin_size(minutes: Any) -> int:
    """Return ``minutes`` if it is a usable bin size.

    Raises:
        ConfigError: unless 5 <= minutes <= 60 and minutes divides 60
    """
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ConfigError(BIN_SIZE_ERROR)
    if minutes < 5 or minutes > 60 or 60 % minutes != 0:
        raise ConfigError(BIN_SIZE_ERROR)
    return minutes


def validate_pat(pat: Any) -> str:
    """Check that a value looks like a conjure.so personal access token."""
    if isinstance(pat, str) and pat.startswith(PAT_PREFIX) and len(pat) == PAT_LENGTH:
        return pat
    raise ConfigError(
        "\n".join(
            [
                "Decoded a PAT value:",
                str(pat),
                "that doesn't look right.",
                f'A valid PAT should be {PAT_LENGTH} characters long and begin with "{PAT_PREFIX}".',
                "You can create one at: https://conjure.so/settings/api",
            ]
        )
    )


@dataclass
class Settings:
    """Sync behaviour settings."""

    bin_size: int
    group_by: GroupBy
    pat: str
    report_unmatched: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create Settings from the settings file format (camelCase keys)."""
        missing = [k for k in ("binSize", "groupBy", "pat", "reportUnmatched") if k not in data]
        if missing:
            raise ConfigError(f"Missing settings: {', '.join(missing)}")

        try:
            group_by = GroupBy(data["groupBy"])
        except ValueError:
            raise ConfigError(
                f"Invalid groupBy {data['groupBy']!r}; expected Category or AppAndTitle"
            ) from None

        report_unmatched = data["reportUnmatched"]
        if not isinstance(report_unmatched, bool):
            raise ConfigError(f"reportUnmatched must be true or false, got {report_unmatched!r}")

        return cls(
            bin_size=validate_bin_size(data["binSize"]),
            group_by=group_by,
            pat=validate_pat(data["pat"]),
            report_unmatched=report_unmatched,
        )


@dataclass
class AWSettings:
    """ActivityWatch connection settings."""

    host: str = DEFAULT_AW_HOST
    port: int = DEFAULT_AW_PORT

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass
class Config:
    """Locations of the input files plus connection settings."""

    categories_path: Path = field(default_factory=lambda: Config.get_config_dir() / "aw-category-export.json")
    settings_path: Path = field(default_factory=lambda: Config.get_config_dir() / "settings.json")
    links_path: Path = field(default_factory=lambda: Config.get_config_dir() / "links.json")
    aw: AWSettings = field(default_factory=AWSettings)
    api_url: str = CONJURE_API_URL
    debug_mode: bool = False

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, appauthor=False))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, appauthor=False))


def read_json(path: Path) -> Any:
    """Read and parse a JSON file, naming the file in any error."""
    try:
        with open(path, "r") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"{e}\n\nCould not open file at: {path}") from e

    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{e}\n\nCould not parse JSON from file at: {path}") from e


def load_settings(
    path: Path,
    overrides: Optional[dict] = None,
    keychain: Optional[KeychainManager] = None,
) -> Settings:
    """Load settings from file, then apply command-line overrides.

    A missing settings file is not an error as long as the overrides supply
    everything. A PAT found in neither place is looked up in the keychain.
    """
    data: dict = {}
    try:
        loaded = read_json(path)
    except ConfigError as e:
        logger.info(str(e))
    else:
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file must contain a JSON object: {path}")
        data = loaded

    data.setdefault("binSize", DEFAULT_BIN_SIZE)
    data.setdefault("reportUnmatched", False)
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    if "pat" not in data and keychain is not None:
        pat = keychain.load_pat()
        if pat:
            data["pat"] = pat

    return Settings.from_dict(data)


def load_pat(
    path: Path,
    override: Optional[str] = None,
    keychain: Optional[KeychainManager] = None,
) -> str:
    """Find the PAT alone: command line, then settings file, then keychain."""
    pat = override
    if pat is None:
        try:
            data = read_json(path)
        except ConfigError as e:
            logger.info(str(e))
        else:
            if isinstance(data, dict):
                pat = data.get("pat")
    if pat is None and keychain is not None:
        pat = keychain.load_pat()
    if pat is None:
        raise ConfigError(
            "No personal access token found. Pass one with --pat, add \"pat\" to "
            f"{path}, or store one with --save-pat."
        )
    return validate_pat(pat)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "aw-conjure-integration.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
        force=True,
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
