from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from core.resilience import with_partial_success

from .masking import mask_pii
from .naming import build_artifact_dir
from .storage import ensure_dir, enforce_limit, write_json
from .types import DiagnosticContext, DiagnosticOptions

logger = logging.getLogger(__name__)


async def _capture_screenshot(session, out_dir: Path) -> str:
    screenshot_path = out_dir / "screenshot.png"
    await session.screenshot(str(screenshot_path))
    return screenshot_path.name


async def _capture_html(session, out_dir: Path, patterns: list[str], secrets: Iterable[str]) -> str:
    html = mask_pii(await session.content(), patterns, secrets)
    html_path = out_dir / "page.html"
    html_path.write_text(html, encoding="utf-8")
    return html_path.name


async def capture_on_failure(
    session,
    options: DiagnosticOptions,
    dctx: DiagnosticContext,
    secrets: Iterable[str] = (),
) -> Optional[Path]:
    """Write a screenshot, masked page HTML and a context.json for a failed stage.

    Returns the artifact directory, or None when capture is disabled for the
    phase or there is no open page.
    """
    if not options.enable_on_failure:
        return None
    if dctx.phase not in options.phases_enabled:
        return None
    if session is None or not session.is_initialized:
        logger.debug("Skipping failure diagnostics: browser session is not open")
        return None

    secrets = list(secrets)
    error_key = type(dctx.error).__name__ if dctx.error else "UnknownError"
    base = Path(options.output_dir)
    out_dir = build_artifact_dir(base, dctx.phase, dctx.item_id, error_key)
    ensure_dir(out_dir)
    enforce_limit(base / dctx.phase, options.max_artifacts_per_run)

    operations = []
    if options.capture_screenshot:
        operations.append(lambda: _capture_screenshot(session, out_dir))
    if options.capture_html:
        operations.append(lambda: _capture_html(session, out_dir, options.pii_mask_patterns, secrets))

    partial = await with_partial_success(operations)
    for error in partial.errors:
        logger.warning(f"Failed to capture a diagnostic artifact: {error}")

    write_json(out_dir / "context.json", {
        "phase": dctx.phase,
        "item_id": dctx.item_id,
        "url": mask_pii(dctx.url or "", options.pii_mask_patterns, secrets) or None,
        "error_type": error_key,
        "error": mask_pii(str(dctx.error), options.pii_mask_patterns, secrets) if dctx.error else None,
        "run_state": dctx.run_state,
        "timestamp": dctx.timestamp or datetime.now().isoformat(),
        "artifacts": partial.results,
        "extra": dctx.extra,
    })

    logger.info(f"Failure diagnostics saved to {out_dir}")
    return out_dir
