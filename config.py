from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class LoginConfig(BaseSettings):
    """Configuration for LinkedIn login credentials."""

    model_config = SettingsConfigDict(populate_by_name=True)

    # Empty defaults keep `import config` safe; presence is checked at start().
    username: str = Field("", validation_alias="LINKEDIN_USERNAME")
    password: str = Field("", validation_alias="LINKEDIN_PASSWORD")
    login_url: str = "https://www.linkedin.com/login"
    max_attempts: int = 2
    retry_delay: float = 3.0  # seconds
    post_submit_wait_ms: int = 5000


class ConnectionConfig(BaseSettings):
    """Criteria and pacing for sending connection requests."""

    model_config = SettingsConfigDict(populate_by_name=True)

    min_mutual_connections: int = Field(0, validation_alias="MIN_MUTUAL_CONNECTIONS")
    max_connections: int = Field(100, validation_alias="MAX_CONNECTIONS")
    connection_delay_ms: int = Field(5000, validation_alias="CONNECTION_DELAY_MS")
    max_scroll_attempts: int = 12
    scroll_settle_ms: int = 4000
    action_settle_ms: int = 1000
    confirmation_wait_ms: int = 500
    max_card_attempts: int = 2
    card_retry_delay: float = 1.0  # seconds


class BrowserConfig(BaseSettings):
    """Playwright browser session settings."""

    model_config = SettingsConfigDict(populate_by_name=True)

    headless: bool = Field(True, validation_alias="HEADLESS")
    timeout_ms: int = Field(30000, validation_alias="TIMEOUT")
    user_data_dir: Optional[Path] = Field(None, validation_alias="USER_DATA_DIR")
    use_existing_profile: bool = Field(False, validation_alias="USE_EXISTING_PROFILE")
    executable_path: Optional[str] = Field(None, validation_alias="CHROME_EXECUTABLE_PATH")
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    viewport_width: int = 1366
    viewport_height: int = 768
    close_timeout_ms: int = 5000
    launch_attempts: int = 3
    launch_retry_delay: float = 2.0  # seconds


class NavigationConfig(BaseSettings):
    """Where the suggestions list lives and how long to wait for it."""

    growth_url: str = "https://www.linkedin.com/mynetwork/grow/"
    network_url: str = "https://www.linkedin.com/mynetwork/"
    page_settle_ms: int = 3000
    dialog_timeout_ms: int = 8000
    max_attempts: int = 2
    retry_delay: float = 3.0  # seconds
    open_list_attempts: int = 2
    open_list_retry_delay: float = 1.0  # seconds


class LoggingConfig(BaseSettings):
    """Configuration for logging."""

    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_file_path: Optional[Path] = Path("./logs/automation.log")
    metrics_file_path: Path = Path("./logs/metrics.json")
    max_log_entries: int = 1000


class CircuitBreakerConfig(BaseSettings):
    """Configuration for the navigation circuit breaker."""

    failure_threshold: int = 3
    recovery_timeout: float = 30.0  # seconds


class DiagnosticsConfig(BaseSettings):
    """Diagnostics collection settings for failures."""

    enable_on_failure: bool = False
    capture_screenshot: bool = True
    capture_html: bool = True
    output_dir: Path = Path("./logs/diagnostics")
    max_artifacts_per_run: int = 10
    pii_mask_patterns: List[str] = []
    phases_enabled: List[str] = ["login", "navigation", "processing"]


class AppConfig(BaseSettings):
    """Root configuration class for the application."""

    login: LoginConfig = Field(default_factory=LoginConfig)
    connections: ConnectionConfig = Field(default_factory=ConnectionConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def validate_app_config(app_config) -> List[str]:
    """Return every problem that prevents a run from starting.

    An empty list means the configuration is usable.
    """
    errors = []

    if not app_config.login.username or not app_config.login.password:
        errors.append("LinkedIn credentials are required (LINKEDIN_USERNAME, LINKEDIN_PASSWORD)")

    min_mutual = app_config.connections.min_mutual_connections
    if min_mutual < 0:
        errors.append("Minimum mutual connections must be non-negative")
    elif min_mutual > 500:
        errors.append("Minimum mutual connections seems unreasonably high (max 500)")

    max_connections = app_config.connections.max_connections
    if max_connections <= 0:
        errors.append("Maximum connections must be positive")
    elif max_connections > 1000:
        errors.append("Maximum connections seems unreasonably high (max 1000)")

    if app_config.browser.timeout_ms <= 0:
        errors.append("Timeout must be positive")

    if app_config.connections.connection_delay_ms < 0:
        errors.append("Connection delay must be non-negative")

    return errors


# Instantiate the main config object
config = AppConfig()
