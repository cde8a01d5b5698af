from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from core.config import Settings, get_settings
from core.logging import get_logger
from core.persistence import write_json_atomic

logger = get_logger("core.metrics")

LAST_RUN_FILE_NAME = "last_run.json"


def metrics_path(settings: Optional[Settings] = None) -> Path:
    settings = settings or get_settings()
    return Path(settings.data_dir) / settings.metrics_dir / LAST_RUN_FILE_NAME


def write_metrics_snapshot(payload: Dict[str, Any], settings: Optional[Settings] = None) -> Path:
    """
    Scrive 'last_run.json' nel METRICS_DIR (dentro RADAR_DATA_DIR) se abilitato.
    Sovrascrive sempre. Ritorna il path (anche se disabilitato).
    """
    settings = settings or get_settings()
    target = metrics_path(settings)
    if not settings.enable_metrics_file:
        return target
    write_json_atomic(target, payload)
    logger.debug("metrics_snapshot_written %s", target)
    return target


__all__ = ["write_metrics_snapshot", "metrics_path", "LAST_RUN_FILE_NAME"]
