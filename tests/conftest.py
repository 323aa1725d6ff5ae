from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pytest


@dataclass
class MockLoginConfig:
    username: str = "jane.doe@example.com"
    password: str = "correct-horse-battery"
    login_url: str = "https://www.linkedin.com/login"
    max_attempts: int = 2
    retry_delay: float = 0.0
    post_submit_wait_ms: int = 0


@dataclass
class MockConnectionConfig:
    min_mutual_connections: int = 0
    max_connections: int = 10
    connection_delay_ms: int = 0
    max_scroll_attempts: int = 12
    scroll_settle_ms: int = 0
    action_settle_ms: int = 0
    confirmation_wait_ms: int = 0
    max_card_attempts: int = 2
    card_retry_delay: float = 0.0


@dataclass
class MockBrowserConfig:
    headless: bool = True
    timeout_ms: int = 30000
    user_data_dir: Optional[Path] = None
    use_existing_profile: bool = False
    executable_path: Optional[str] = None
    user_agent: str = "test-agent"
    viewport_width: int = 1280
    viewport_height: int = 720
    close_timeout_ms: int = 50
    launch_attempts: int = 2
    launch_retry_delay: float = 0.0


@dataclass
class MockNavigationConfig:
    growth_url: str = "https://www.linkedin.com/mynetwork/grow/"
    network_url: str = "https://www.linkedin.com/mynetwork/"
    page_settle_ms: int = 0
    dialog_timeout_ms: int = 10
    max_attempts: int = 2
    retry_delay: float = 0.0
    open_list_attempts: int = 2
    open_list_retry_delay: float = 0.0


@dataclass
class MockLoggingConfig:
    log_level: str = "INFO"
    log_file_path: Optional[Path] = None
    metrics_file_path: Optional[Path] = None
    max_log_entries: int = 100


@dataclass
class MockCircuitBreakerConfig:
    failure_threshold: int = 3
    recovery_timeout: float = 30.0


@dataclass
class MockDiagnosticsConfig:
    enable_on_failure: bool = False
    capture_screenshot: bool = True
    capture_html: bool = True
    output_dir: Path = Path("./logs/diagnostics")
    max_artifacts_per_run: int = 10
    pii_mask_patterns: List[str] = field(default_factory=list)
    phases_enabled: List[str] = field(default_factory=lambda: ["login", "navigation", "processing"])


@dataclass
class MockAppConfig:
    login: MockLoginConfig = field(default_factory=MockLoginConfig)
    connections: MockConnectionConfig = field(default_factory=MockConnectionConfig)
    browser: MockBrowserConfig = field(default_factory=MockBrowserConfig)
    navigation: MockNavigationConfig = field(default_factory=MockNavigationConfig)
    logging: MockLoggingConfig = field(default_factory=MockLoggingConfig)
    circuit_breaker: MockCircuitBreakerConfig = field(default_factory=MockCircuitBreakerConfig)
    diagnostics: MockDiagnosticsConfig = field(default_factory=MockDiagnosticsConfig)


@pytest.fixture
def app_config():
    """Fast, credential-complete configuration with every delay set to zero."""
    return MockAppConfig()
