from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, Field
from typing import List
from pathlib import Path
import configparser
from dotenv import load_dotenv

load_dotenv()  # Force load .env

from cstiscan.core.exceptions import InvalidConfigError
from cstiscan.utils.logger import get_logger

logger = get_logger("core.config")

# Playwright load states accepted for navigation waits
VALID_WAIT_UNTIL = ["load", "domcontentloaded", "networkidle", "commit"]

# Hardened Chromium flags: no background traffic, no wasm, no JIT
DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-gpu",
    "--disable-sync",
    "--disable-translate",
    "--hide-scrollbars",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-first-run",
    "--safebrowsing-disable-auto-update",
    "--js-flags=--noexpose_wasm,--jitless",
]


class Settings(BaseSettings):
    """
    Unified Configuration Management using Pydantic Settings.
    Loads from .env file, environment variables and cstiscan.conf.

    Per-run scan behaviour (skip flags, crawl depth...) is NOT here; it lives
    in ScanOptions and is passed explicitly to the orchestrator.
    """
    # --- Project Metadata ---
    APP_NAME: str = "cstiscan"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Interaction budgets (seconds) ---
    PROBE_TIMEOUT: float = Field(default=10.0, description="Engine detection probe budget")
    REFLECTION_TIMEOUT: float = Field(default=10.0, description="Reflection check budget")
    INJECTION_TIMEOUT: float = Field(default=10.0, description="Payload injection / click budget")
    ENUMERATION_TIMEOUT: float = Field(default=10.0, description="Surface enumeration budget")
    NAVIGATION_TIMEOUT: float = Field(default=10.0, description="Explicit navigation budget")
    HISTORY_TIMEOUT: float = Field(default=10.0, description="go_back / reload budget")
    POST_TRIGGER_NAVIGATION_TIMEOUT: float = Field(default=5.0, description="Wait for navigation after a trigger")

    # --- Visual / Browser ---
    HEADLESS_BROWSER: bool = True
    BROWSER_CHANNEL: str = ""  # e.g. "chrome"; empty = bundled chromium
    BROWSER_USER_DATA_DIR: str = ""  # e.g. "/tmp/temp_context"; empty = ephemeral context
    BROWSER_ARGS: List[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    USER_AGENT: str = ""  # empty = browser default
    VIEWPORT_WIDTH: int = 1280
    VIEWPORT_HEIGHT: int = 720
    WAIT_UNTIL: str = "networkidle"
    BROWSER_LAUNCH_TIMEOUT: float = 30.0

    # --- Crawler ---
    CRAWL_MAX_PAGES: int = 0  # 0 = unlimited (visited set + depth bound the crawl)

    # --- Logging ---
    LOG_LEVEL: str = "INFO"  # console level; files always get DEBUG+. Log dir: CSTISCAN_LOG_DIR env

    # --- Paths ---
    # Calculated relative to this file: cstiscan/core/config.py -> cstiscan/core -> cstiscan -> Root
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # --- Validators ---
    @field_validator('PROBE_TIMEOUT', 'REFLECTION_TIMEOUT', 'INJECTION_TIMEOUT',
                     'ENUMERATION_TIMEOUT', 'NAVIGATION_TIMEOUT', 'HISTORY_TIMEOUT',
                     'POST_TRIGGER_NAVIGATION_TIMEOUT', 'BROWSER_LAUNCH_TIMEOUT')
    @classmethod
    def validate_timeouts(cls, v, info):
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive (got {v})")
        return v

    @field_validator('WAIT_UNTIL')
    @classmethod
    def validate_wait_until(cls, v):
        """Validate navigation load state."""
        if v not in VALID_WAIT_UNTIL:
            raise ValueError(f"WAIT_UNTIL must be one of: {VALID_WAIT_UNTIL}")
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level name."""
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return v

    def _load_timeouts_config(self, config):
        """Load TIMEOUTS section config."""
        if "TIMEOUTS" not in config:
            return
        for key in config["TIMEOUTS"]:
            attr = f"{key.upper()}_TIMEOUT" if not key.upper().endswith("_TIMEOUT") else key.upper()
            if attr in type(self).model_fields:
                setattr(self, attr, config["TIMEOUTS"].getfloat(key))
            else:
                logger.warning(f"Unknown timeout in cstiscan.conf: {key}")

    def _load_browser_config(self, config):
        """Load BROWSER section config."""
        if "BROWSER" not in config:
            return
        section = config["BROWSER"]
        if "HEADLESS" in section:
            self.HEADLESS_BROWSER = section.getboolean("HEADLESS")
        if "CHANNEL" in section:
            self.BROWSER_CHANNEL = section["CHANNEL"]
        if "USER_DATA_DIR" in section:
            self.BROWSER_USER_DATA_DIR = section["USER_DATA_DIR"]
        if "USER_AGENT" in section:
            self.USER_AGENT = section["USER_AGENT"]
        if "WAIT_UNTIL" in section:
            self.WAIT_UNTIL = section["WAIT_UNTIL"]

    def _load_crawler_config(self, config):
        """Load CRAWLER section config."""
        if "CRAWLER" not in config:
            return
        if "MAX_PAGES" in config["CRAWLER"]:
            self.CRAWL_MAX_PAGES = config["CRAWLER"].getint("MAX_PAGES")

    def load_from_conf(self, conf_path: Path = None):
        """Overrides settings with values from cstiscan.conf"""
        config = configparser.ConfigParser()
        config.optionxform = str.upper
        conf_path = conf_path or self.BASE_DIR / "cstiscan.conf"

        if not conf_path.exists():
            return

        config.read(conf_path)
        self._load_timeouts_config(config)
        self._load_browser_config(config)
        self._load_crawler_config(config)

    # --- Configuration Validation ---
    def validate_config(self) -> List[str]:
        """
        Validate entire configuration.
        Returns list of warnings (empty if valid).
        Raises InvalidConfigError if critical errors found.
        """
        errors = []
        warnings = []

        if self.CRAWL_MAX_PAGES < 0:
            errors.append("CRAWL_MAX_PAGES must be >= 0")
        if self.VIEWPORT_WIDTH < 1 or self.VIEWPORT_HEIGHT < 1:
            errors.append("VIEWPORT_WIDTH/VIEWPORT_HEIGHT must be >= 1")
        if self.WAIT_UNTIL not in VALID_WAIT_UNTIL:
            errors.append(f"WAIT_UNTIL must be one of: {VALID_WAIT_UNTIL}")
        if self.POST_TRIGGER_NAVIGATION_TIMEOUT > self.NAVIGATION_TIMEOUT:
            warnings.append("POST_TRIGGER_NAVIGATION_TIMEOUT exceeds NAVIGATION_TIMEOUT")
        if self.BROWSER_USER_DATA_DIR and not Path(self.BROWSER_USER_DATA_DIR).parent.exists():
            errors.append(f"BROWSER_USER_DATA_DIR parent does not exist: {self.BROWSER_USER_DATA_DIR}")

        # Log warnings
        for w in warnings:
            logger.warning(f"Config warning: {w}")

        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            logger.error(error_msg)
            raise InvalidConfigError(error_msg, context={"errors": errors})

        return warnings

    # --- Debug Logging ---
    def log_config(self):
        """Log configuration (only in DEBUG mode)."""
        if not self.DEBUG:
            return
        logger.debug("Configuration loaded:")
        for key, value in self.model_dump().items():
            if not key.startswith('_'):
                logger.debug(f"  {key}: {value}")


# Singleton Instance
settings = Settings()
# Load configuration from cstiscan.conf
settings.load_from_conf()
# Log config in debug mode
settings.log_config()
