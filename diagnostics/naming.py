from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Optional

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def build_artifact_dir(base: Path, phase: str, item_id: Optional[str], error_key: str) -> Path:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    iid = _UNSAFE.sub("-", item_id) if item_id else "noitem"
    return base / phase / f"{ts}_{iid}_{error_key}"
