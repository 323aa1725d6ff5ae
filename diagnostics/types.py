from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class DiagnosticOptions:
    enable_on_failure: bool = False
    capture_screenshot: bool = True
    capture_html: bool = True
    output_dir: Path = Path("./logs/diagnostics")
    max_artifacts_per_run: int = 10
    pii_mask_patterns: list[str] = field(default_factory=list)
    phases_enabled: list[str] = field(default_factory=lambda: ["login", "navigation", "processing"])

    @classmethod
    def from_config(cls, diagnostics_config) -> "DiagnosticOptions":
        return cls(
            enable_on_failure=diagnostics_config.enable_on_failure,
            capture_screenshot=diagnostics_config.capture_screenshot,
            capture_html=diagnostics_config.capture_html,
            output_dir=Path(diagnostics_config.output_dir),
            max_artifacts_per_run=diagnostics_config.max_artifacts_per_run,
            pii_mask_patterns=list(diagnostics_config.pii_mask_patterns),
            phases_enabled=list(diagnostics_config.phases_enabled),
        )


@dataclass
class DiagnosticContext:
    phase: str
    item_id: Optional[str]
    url: Optional[str]
    error: Optional[BaseException]
    run_state: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
