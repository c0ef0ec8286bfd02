import os
from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    APP_NAME: str = "serp-scout"
    APP_DESCRIPTION: str | None = "Resilient search result extraction over a scripted browser session"
    APP_VERSION: str | None = "1.0.0"


class EnvironmentOption(str, Enum):
    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"


class EnvironmentSettings(BaseSettings):
    ENVIRONMENT: EnvironmentOption = EnvironmentOption.LOCAL


class CORSSettings(BaseSettings):
    CORS_ORIGINS: list[str] = ["*"]
    CORS_METHODS: list[str] = ["*"]
    CORS_HEADERS: list[str] = ["*"]


class LogFormatOption(str, Enum):
    SIMPLE = "simple"
    JSON = "json"


class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: LogFormatOption = LogFormatOption.SIMPLE
    LOG_FILE_PATH: str | None = None  # None = console only


class WaitConditionOption(str, Enum):
    """Document state the navigation waits for before returning."""

    DOMCONTENTLOADED = "domcontentloaded"
    LOAD = "load"
    NETWORKIDLE = "networkidle"


class ScoutSettings(BaseSettings):
    """Configuration for the Scout search extraction engine.

    Pipeline per search:
    - Resolve region (caller-supplied or geo lookup)
    - Breaker-guarded, retried unit of work over one browser session
    - Block detection, then strategy-chain extraction
    """

    # ============================================
    # Browser Settings
    # ============================================
    # Headless=False is more stealthy (requires XVFB in Docker)
    SCOUT_HEADLESS: bool = True
    SCOUT_BROWSER_EXECUTABLE_PATH: str | None = None
    SCOUT_BROWSER_ARGS: list[str] = [
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
    ]
    SCOUT_BROWSER_LANG: str = "en-US"

    # ============================================
    # Timeout Settings (seconds)
    # ============================================
    SCOUT_LAUNCH_TIMEOUT: float = 30.0
    SCOUT_NAVIGATION_TIMEOUT: float = 30.0
    SCOUT_SELECTOR_TIMEOUT: float = 10.0
    # Any other single CDP command (evaluate, cookies, screenshot, pointer)
    SCOUT_EVALUATE_TIMEOUT: float = 10.0
    SCOUT_WAIT_CONDITION: WaitConditionOption = WaitConditionOption.LOAD

    # ============================================
    # Search Settings
    # ============================================
    SCOUT_DEFAULT_REGION: str = "US"
    SCOUT_MAX_RESULTS: int = 10
    # Container waited for before extraction (missing container is not fatal)
    SCOUT_RESULTS_SELECTOR: str = "div#search"
    # Click through cookie-consent interstitials (EU regions)
    SCOUT_HANDLE_CONSENT: bool = True

    # Optional JSON file with behavior/detection/extraction tables
    SCOUT_CONFIG_FILE: str | None = None

    # ============================================
    # Retry Settings
    # ============================================
    SCOUT_RETRY_MAX_ATTEMPTS: int = 5
    SCOUT_RETRY_INITIAL_BACKOFF: float = 5.0
    SCOUT_RETRY_BACKOFF_MULTIPLIER: float = 2.0
    SCOUT_RETRY_MAX_BACKOFF: float = 60.0
    SCOUT_RETRY_ERRORS: list[str] = [
        "Timeout",
        "NetworkError",
        "ConnectionReset",
        "Blocked",
        "ElementNotFound",
        "SessionCrashed",
    ]
    SCOUT_RETRY_RESET_MARKERS: list[str] = [
        "ConnectionReset",
        "CONNECTION_CLOSED",
        "ERR_CONNECTION_CLOSED",
        "ERR_CONNECTION_RESET",
    ]
    # Peer-forced resets need a much longer cooldown than timeouts
    SCOUT_RETRY_RESET_DELAY: float = 45.0

    # ============================================
    # Circuit Breaker Settings
    # ============================================
    SCOUT_BREAKER_THRESHOLD: int = 3
    SCOUT_BREAKER_COOLDOWN: float = 120.0

    # ============================================
    # Geo Resolution Settings
    # ============================================
    SCOUT_GEO_ENABLED: bool = True
    SCOUT_GEO_CACHE_TTL: float = 3600.0  # 1 hour
    SCOUT_GEO_TIMEOUT: float = 10.0

    # ============================================
    # Session Artifacts
    # ============================================
    SCOUT_COOKIE_DIR: str = "./data/cookies"
    SCOUT_COOKIE_KEEP: int = 3
    SCOUT_SCREENSHOT_DIR: str = "./logs/screenshots"

    # ============================================
    # Fingerprint Pools
    # ============================================
    SCOUT_VIEWPORTS: list[dict[str, int]] = [
        {"width": 1920, "height": 1080},  # desktop
        {"width": 1536, "height": 864},
        {"width": 1440, "height": 900},
        {"width": 1366, "height": 768},  # laptop
        {"width": 1280, "height": 800},
        {"width": 1024, "height": 1366},  # tablet
    ]
    SCOUT_USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.2 Safari/605.1.15"
        ),
    ]

    # ============================================
    # API Rate Limiting (human-like spacing between searches)
    # ============================================
    SCOUT_RATE_LIMIT_ENABLED: bool = True
    SCOUT_RATE_LIMIT_MIN_DELAY: float = 15.0
    SCOUT_RATE_LIMIT_MAX_DELAY: float = 30.0
    SCOUT_RATE_LIMIT_BURST: int = 2
    SCOUT_RATE_LIMIT_PERIOD: float = 180.0


class Settings(
    AppSettings,
    EnvironmentSettings,
    CORSSettings,
    LoggingSettings,
    ScoutSettings,
):
    model_config = SettingsConfigDict(
        env_file=os.path.join(os.path.dirname(os.path.realpath(__file__)), "..", "..", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
