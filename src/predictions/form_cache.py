from __future__ import annotations

import copy
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

from core.logging import get_logger
from core.models import TeamFormRecord
from core.persistence import load_json_object, write_json_atomic

logger = get_logger("predictions.form_cache")


class CacheCorruptionError(ValueError):
    """File cache presente ma illeggibile: il run prosegue con cache vuota."""


def _parse_ts(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TeamFormCache:
    """
    Cache forma squadre indicizzata per team id (chiave stringa nel JSON).

    Oggetto esplicito passato all'aggregatore: nessuno stato globale.
    Una entry è stale se assente/corrotta, senza updated_at valido, più vecchia
    del TTL oppure calcolata con una form window diversa da quella corrente.
    """

    def __init__(
        self,
        entries: Optional[Dict[str, TeamFormRecord]] = None,
        *,
        ttl_hours: float = 20.0,
        form_window: Optional[int] = None,
    ) -> None:
        self._entries: Dict[str, TeamFormRecord] = dict(entries or {})
        self._ttl = timedelta(hours=ttl_hours)
        self._form_window = form_window
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path, *, ttl_hours: float = 20.0, form_window: Optional[int] = None) -> "TeamFormCache":
        try:
            raw = load_json_object(path)
        except ValueError as e:
            err = CacheCorruptionError(f"team form cache corrotta: {path}")
            logger.warning("team_cache_corrupt -> cache vuota (%s)", err, exc_info=e)
            raw = None
        entries: Dict[str, TeamFormRecord] = {}
        for key, value in (raw or {}).items():
            if isinstance(value, dict):
                entries[str(key)] = value  # type: ignore[assignment]
        logger.info("team_cache_loaded entries=%s", len(entries), extra={"count": len(entries)})
        return cls(entries, ttl_hours=ttl_hours, form_window=form_window)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, team_id: object) -> bool:
        return str(team_id) in self._entries

    def get(self, team_id: int) -> Optional[TeamFormRecord]:
        with self._lock:
            entry = self._entries.get(str(team_id))
            return copy.deepcopy(entry) if entry is not None else None

    def put(self, team_id: int, record: TeamFormRecord, now: datetime) -> None:
        entry: TeamFormRecord = copy.deepcopy(record)
        entry["updated_at"] = format_ts(now)
        if self._form_window is not None:
            entry["form_window"] = self._form_window
        with self._lock:
            self._entries[str(team_id)] = entry

    def is_stale(self, team_id: int, now: datetime) -> bool:
        with self._lock:
            entry = self._entries.get(str(team_id))
        if not entry or not isinstance(entry.get("matches"), list):
            return True
        updated = _parse_ts(entry.get("updated_at"))
        if updated is None:
            return True
        if self._form_window is not None and entry.get("form_window") != self._form_window:
            return True
        return (now - updated) > self._ttl

    def to_dict(self) -> Dict[str, TeamFormRecord]:
        with self._lock:
            return {k: copy.deepcopy(self._entries[k]) for k in sorted(self._entries, key=_sort_key)}

    def save(self, path: Path) -> None:
        write_json_atomic(path, self.to_dict())


def _sort_key(key: str) -> tuple:
    return (0, int(key), key) if key.isdigit() else (1, 0, key)


__all__ = ["TeamFormCache", "CacheCorruptionError", "format_ts"]
