"""Configuration module for the Groundwave Zettelkasten cache."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from groundwave_zk.exceptions import ConfigurationError, ErrorCode

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

DAILY_SUBDIRECTORY = "daily"


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class ZKLocation:
    """A notes directory on the WebDAV server plus its index filename.

    Attributes:
        base_url: Directory URL, always ending in ``/``.
        index_file: Filename of the index note inside ``base_url``.
    """

    base_url: str
    index_file: str

    @property
    def index_url(self) -> str:
        return self.file_url(self.index_file)

    @property
    def daily_url(self) -> str:
        return f"{self.base_url}{DAILY_SUBDIRECTORY}/"

    def file_url(self, filename: str) -> str:
        """URL of a file in the main notes directory."""
        return self.base_url + quote(filename)

    def daily_file_url(self, filename: str) -> str:
        """URL of a file in the daily journal subdirectory."""
        return self.daily_url + quote(filename)


def parse_org_location(raw_url: Optional[str], config_key: str) -> ZKLocation:
    """Split a full ``.org`` file URL into its directory and filename.

    Example:
        ``https://webdav.example.com/org/abc-index.org`` becomes
        base ``https://webdav.example.com/org/`` and file ``abc-index.org``.

    Raises:
        ConfigurationError: If the URL is missing, not absolute http(s),
            or does not point to a ``.org`` file.
    """
    if not raw_url or not raw_url.strip():
        raise ConfigurationError(
            f"{config_key} not configured",
            config_key=config_key,
            code=ErrorCode.CONFIG_MISSING,
        )

    try:
        parts = urlsplit(raw_url.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid {config_key} URL: {e}", config_key=config_key
        )

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(
            f"{config_key} must be an absolute http(s) URL", config_key=config_key
        )

    segments = parts.path.strip("/").split("/")
    filename = unquote(segments[-1])
    if not filename.endswith(".org") or filename == ".org":
        raise ConfigurationError(
            f"{config_key} must point to a .org file", config_key=config_key
        )

    directory = "/".join(segments[:-1])
    base_path = f"/{directory}/" if directory else "/"
    return ZKLocation(
        base_url=f"{parts.scheme}://{parts.netloc}{base_path}",
        index_file=filename,
    )


class ZKConfig(BaseModel):
    """Configuration for the Zettelkasten cache."""

    # Full URL of the index note; its directory is the notes root
    zk_path: Optional[str] = Field(
        default_factory=lambda: _optional_env("WEBDAV_ZK_PATH")
    )
    # Optional alternate "home" index note in the same directory
    home_path: Optional[str] = Field(
        default_factory=lambda: _optional_env("WEBDAV_HOME_PATH")
    )
    webdav_username: Optional[str] = Field(
        default_factory=lambda: _optional_env("WEBDAV_USERNAME")
    )
    webdav_password: Optional[str] = Field(
        default_factory=lambda: _optional_env("WEBDAV_PASSWORD")
    )
    # Fast timeout: the WebDAV server is expected on the same network
    request_timeout: float = Field(
        default_factory=lambda: float(
            os.getenv("GROUNDWAVE_ZK_REQUEST_TIMEOUT", "3")
        )
    )
    startup_delay: float = Field(
        default_factory=lambda: float(os.getenv("GROUNDWAVE_ZK_STARTUP_DELAY", "5"))
    )
    refresh_interval: float = Field(
        default_factory=lambda: float(
            os.getenv("GROUNDWAVE_ZK_REFRESH_INTERVAL", "600")
        )
    )
    # Upper bound for a whole refresh cycle
    refresh_deadline: float = Field(
        default_factory=lambda: float(
            os.getenv("GROUNDWAVE_ZK_REFRESH_DEADLINE", "900")
        )
    )
    # Public site URL; links under it are not marked as external
    site_base_url: Optional[str] = Field(
        default_factory=lambda: _optional_env("GROUNDWAVE_BASE_URL")
    )
    default_base_path: str = Field(default="/zk")
    public_base_path: str = Field(default="/note")
    home_base_path: str = Field(default="/home")

    @model_validator(mode="after")
    def _validate_timings(self) -> "ZKConfig":
        """Reject timings that would stall or spin the refresher."""
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.startup_delay < 0:
            raise ValueError("startup_delay must be >= 0")
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be > 0")
        if self.refresh_deadline <= 0:
            raise ValueError("refresh_deadline must be > 0")
        if self.refresh_deadline < self.request_timeout:
            logger.warning(
                "refresh_deadline (%.1fs) is shorter than request_timeout (%.1fs)",
                self.refresh_deadline,
                self.request_timeout,
            )
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.webdav_username and self.webdav_password)

    def get_zk_location(self) -> ZKLocation:
        """Get the notes directory and index filename from ``zk_path``."""
        return parse_org_location(self.zk_path, "WEBDAV_ZK_PATH")

    def get_home_location(self) -> ZKLocation:
        """Get the home index location.

        Falls back to the main index when ``home_path`` is not set. The home
        note must live in the same directory as the main index.

        Raises:
            ConfigurationError: If either path is invalid or the parent
                directories differ.
        """
        zk_location = self.get_zk_location()
        if not self.home_path:
            return zk_location

        home_location = parse_org_location(self.home_path, "WEBDAV_HOME_PATH")
        if home_location.base_url != zk_location.base_url:
            raise ConfigurationError(
                "WEBDAV_HOME_PATH must be in the same directory as WEBDAV_ZK_PATH",
                config_key="WEBDAV_HOME_PATH",
            )
        return home_location


# Create a global config instance
config = ZKConfig()
