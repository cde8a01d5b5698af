from __future__ import annotations

import copy
import threading
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.logging import get_logger
from core.models import FormMatch, TeamFormRecord
from providers.api_football.exceptions import ProviderError
from providers.api_football.team_history import TeamHistoryProvider
from .form_cache import TeamFormCache

logger = get_logger("predictions.team_form")


def _goal(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None


def _iso(value: Any) -> Optional[str]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _obj(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def match_from_fixture(item: Any, team_id: int) -> Optional[FormMatch]:
    """Partita dal punto di vista di team_id; None per record malformati o non attribuibili a team_id."""
    if not isinstance(item, dict):
        return None
    teams = _obj(item.get("teams"))
    home = _obj(teams.get("home"))
    away = _obj(teams.get("away"))
    goals = _obj(item.get("goals"))

    g_home = _goal(goals.get("home"))
    g_away = _goal(goals.get("away"))
    if g_home is None or g_away is None:
        return None

    if _goal(home.get("id")) == team_id:
        is_home = True
    elif _goal(away.get("id")) == team_id:
        is_home = False
    else:
        return None

    gf, ga = (g_home, g_away) if is_home else (g_away, g_home)
    opponent = (away if is_home else home).get("name") or "?"
    result = "W" if gf > ga else ("L" if gf < ga else "D")
    return {
        "venue": "H" if is_home else "A",
        "opponent": str(opponent).strip(),
        "score": f"{gf}-{ga}",
        "date_utc": _iso(_obj(item.get("fixture")).get("date")),
        "result": result,
    }


def build_team_form(
    team_id: int,
    fixtures: List[Dict[str, Any]],
    window: int,
    *,
    league_id: Optional[int] = None,
    season: Optional[int] = None,
) -> TeamFormRecord:
    """
    Aggrega le ultime `window` partite concluse.
    Lo storico corto NON viene riempito: window del record = partite realmente disponibili.
    """
    matches: List[FormMatch] = []
    for item in fixtures:
        if len(matches) >= window:
            break
        m = match_from_fixture(item, team_id)
        if m is not None:
            matches.append(m)

    goals_for = 0
    goals_against = 0
    for m in matches:
        gf, ga = (int(x) for x in m["score"].split("-"))
        goals_for += gf
        goals_against += ga

    return {
        "team_id": team_id,
        "league_id": league_id,
        "season": season,
        "window": len(matches),
        "matches": matches,
        "goals_for": goals_for,
        "goals_against": goals_against,
        "form": "".join(m["result"] for m in matches),
        "neutral": False,
    }


def neutral_form(team_id: int, *, league_id: Optional[int] = None, season: Optional[int] = None) -> TeamFormRecord:
    """Nessuno storico: il modello userà i tassi neutri di lega."""
    return {
        "team_id": team_id,
        "league_id": league_id,
        "season": season,
        "window": 0,
        "matches": [],
        "goals_for": 0,
        "goals_against": 0,
        "form": "",
        "neutral": True,
    }


class TeamFormAggregator:
    """
    Restituisce il TeamFormRecord di una squadra usando la cache passata per riferimento.

    - entry fresca in cache -> nessuna chiamata provider
    - refresh concorrenti della stessa squadra: un solo fetch in volo, condiviso
    - errore provider: si tiene l'entry precedente, altrimenti record neutro (non salvato in cache)
    """

    def __init__(
        self,
        history: TeamHistoryProvider,
        cache: TeamFormCache,
        form_window: int,
    ) -> None:
        self._history = history
        self._cache = cache
        self._window = form_window
        self._lock = threading.Lock()
        self._inflight: Dict[int, Future] = {}
        self._run_results: Dict[int, TeamFormRecord] = {}
        self.stats: Dict[str, int] = {"cached": 0, "refreshed": 0, "stale_kept": 0, "fallback": 0}

    def _bump(self, key: str) -> None:
        with self._lock:
            self.stats[key] += 1

    def get_form(
        self,
        team_id: int,
        *,
        league_id: Optional[int] = None,
        season: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TeamFormRecord:
        now = now or datetime.now(timezone.utc)
        owner = False
        with self._lock:
            done = self._run_results.get(team_id)
            if done is not None:
                return copy.deepcopy(done)
            if not self._cache.is_stale(team_id, now):
                self.stats["cached"] += 1
                cached = self._cache.get(team_id)
                if cached is not None:
                    return cached
            future = self._inflight.get(team_id)
            if future is None:
                future = Future()
                self._inflight[team_id] = future
                owner = True

        if not owner:
            return copy.deepcopy(future.result())

        try:
            record = self._refresh(team_id, league_id, season, now)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(record)
            return copy.deepcopy(record)
        finally:
            with self._lock:
                self._inflight.pop(team_id, None)

    def _refresh(
        self,
        team_id: int,
        league_id: Optional[int],
        season: Optional[int],
        now: datetime,
    ) -> TeamFormRecord:
        try:
            raw = self._history.last_finished(team_id, self._window)
        except ProviderError as e:
            previous = self._cache.get(team_id)
            if previous is not None:
                logger.warning(
                    "team_form_refresh_failed -> entry precedente team=%s err=%s",
                    team_id,
                    e,
                    extra={"team_id": team_id, "status": e.status},
                )
                self._bump("stale_kept")
                record = previous
            else:
                logger.warning(
                    "team_form_refresh_failed -> record neutro team=%s err=%s",
                    team_id,
                    e,
                    extra={"team_id": team_id, "status": e.status},
                )
                self._bump("fallback")
                record = neutral_form(team_id, league_id=league_id, season=season)
        else:
            record = build_team_form(team_id, raw, self._window, league_id=league_id, season=season)
            self._cache.put(team_id, record, now)
            self._bump("refreshed")
            logger.debug("team_form_refreshed team=%s form=%s", team_id, record["form"])

        with self._lock:
            self._run_results[team_id] = record
        return record


__all__ = [
    "TeamFormAggregator",
    "build_team_form",
    "neutral_form",
    "match_from_fixture",
]
