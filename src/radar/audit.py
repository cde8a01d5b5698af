from __future__ import annotations

from typing import Any, Dict, Optional, Set


def _ids(doc: Optional[Dict[str, Any]], key: str) -> Set[int]:
    out: Set[int] = set()
    if not doc or not isinstance(doc.get(key), list):
        return out
    for item in doc[key]:
        if not isinstance(item, dict):
            continue
        raw = item.get("fixture_id") or item.get("id")
        try:
            out.add(int(raw))
        except (TypeError, ValueError):
            continue
    return out


def audit_fixture_coverage(
    calendar: Optional[Dict[str, Any]],
    radar_day: Optional[Dict[str, Any]],
    radar_week: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Controllo di coerenza tra i tre documenti: ogni highlight deve esistere nel calendario.
    'ok' è False se esiste almeno un gap.
    """
    calendar_ids = _ids(calendar, "matches")
    day_ids = _ids(radar_day, "highlights")
    week_ids = _ids(radar_week, "items")

    day_missing = sorted(day_ids - calendar_ids)
    week_missing = sorted(week_ids - calendar_ids)
    return {
        "counts": {
            "calendar": len(calendar_ids),
            "radar_day": len(day_ids),
            "radar_week": len(week_ids),
        },
        "day_not_in_calendar": day_missing,
        "week_not_in_calendar": week_missing,
        "ok": not day_missing and not week_missing,
    }


__all__ = ["audit_fixture_coverage"]
