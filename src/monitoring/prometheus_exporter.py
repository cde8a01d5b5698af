from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Gauge,
    write_to_textfile,
)
from core.config import ConfigurationError, Settings, get_settings
from core.logging import get_logger
from core.metrics import LAST_RUN_FILE_NAME
from core.persistence import load_json_object

logger = get_logger("monitoring.prometheus_exporter")

# Registry dedicato: il job è batch, le metriche finiscono in un textfile
_REGISTRY = CollectorRegistry()

LEAGUES_RESOLVED = Gauge("radar_leagues_resolved", "Leghe risolte nell'ultimo run", registry=_REGISTRY)
FIXTURES_TOTAL = Gauge("radar_fixtures_total", "Fixtures nel calendario dell'ultimo run", registry=_REGISTRY)
TEAMS = Gauge(
    "radar_teams",
    "Squadre per esito del recupero forma nell'ultimo run",
    ["outcome"],
    registry=_REGISTRY,
)
HIGHLIGHTS = Gauge("radar_highlights", "Highlight pubblicati per documento", ["document"], registry=_REGISTRY)
PROVIDER_REQUESTS = Gauge("radar_provider_requests", "Richieste HTTP al provider nell'ultimo run", registry=_REGISTRY)
RUN_DURATION_MS = Gauge("radar_run_duration_ms", "Durata ultimo run in ms", registry=_REGISTRY)
DOCUMENTS_WRITTEN = Gauge("radar_documents_written", "1 se l'ultimo run ha aggiornato i documenti", registry=_REGISTRY)

TEAM_OUTCOMES = ("cached", "refreshed", "stale_kept", "fallback")


def _num(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def apply_snapshot(data: Dict[str, Any]) -> None:
    """Mappa il contenuto di last_run.json sulle gauge."""
    LEAGUES_RESOLVED.set(_num(data.get("leagues")))
    FIXTURES_TOTAL.set(_num(data.get("fixtures")))

    teams = data.get("teams") or {}
    for outcome in TEAM_OUTCOMES:
        TEAMS.labels(outcome=outcome).set(_num(teams.get(outcome)))

    hl = data.get("highlights") or {}
    HIGHLIGHTS.labels(document="day").set(_num(hl.get("day")))
    HIGHLIGHTS.labels(document="week").set(_num(hl.get("week")))

    PROVIDER_REQUESTS.set(_num(data.get("requests_total")))
    RUN_DURATION_MS.set(_num(data.get("duration_ms")))
    DOCUMENTS_WRITTEN.set(_num(bool(data.get("written"))))


def update_prom_metrics(base_dir: Optional[str] = None, settings: Optional[Settings] = None) -> bool:
    """
    Legge metrics/last_run.json e aggiorna le gauge; se RADAR_PROMETHEUS_TEXTFILE
    è impostata scrive il textfile per il node exporter.
    Best-effort: ritorna False se non c'è nulla da esportare.
    """
    if settings is None:
        try:
            settings = get_settings()
        except ConfigurationError:
            logger.debug("Config non disponibile, skip metrics update")
            return False

    bdir = Path(base_dir or settings.data_dir)
    try:
        data = load_json_object(bdir / settings.metrics_dir / LAST_RUN_FILE_NAME)
    except ValueError as e:
        logger.warning("last_run illeggibile, skip metrics update: %s", e)
        return False
    if data is None:
        logger.debug("last_run assente, skip metrics update")
        return False

    apply_snapshot(data)

    if settings.prometheus_textfile:
        target = Path(settings.prometheus_textfile)
        target.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(target), _REGISTRY)
        logger.info("prometheus_textfile_written %s", target)
    else:
        logger.debug("Prometheus metrics updated.")
    return True


__all__ = ["update_prom_metrics", "apply_snapshot", "_REGISTRY"]
