from __future__ import annotations

from typing import Any, Dict, List

from core.logging import get_logger

logger = get_logger(__name__)

FINISHED_STATUSES = "FT-AET-PEN"


def _fixture_date(item: Dict[str, Any]) -> str:
    fixture = item.get("fixture")
    return str(fixture.get("date") or "") if isinstance(fixture, dict) else ""


class TeamHistoryProvider:
    """Ultime N partite concluse di una squadra (endpoint /fixtures?team=&last=)."""

    def __init__(self, client: Any, tz: str = "UTC") -> None:
        self._client = client
        self._tz = tz

    def last_finished(self, team_id: int, last_n: int) -> List[Dict[str, Any]]:
        raw = self._client.get(
            "/fixtures",
            params={"team": team_id, "last": last_n, "status": FINISHED_STATUSES, "timezone": self._tz},
        )
        response = raw.get("response", []) if isinstance(raw, dict) else []
        if not isinstance(response, list):
            logger.warning("Formato inatteso: 'response' non è una lista (team=%s)", team_id)
            return []
        items = [r for r in response if isinstance(r, dict)]
        # Il provider restituisce già dal più recente, ma non è garantito
        items.sort(key=_fixture_date, reverse=True)
        return items[:last_n]


__all__ = ["TeamHistoryProvider", "FINISHED_STATUSES"]
