from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from core.logging import get_logger
from core.models import Fixture, ResolvedLeague
from .exceptions import ProviderError, TransientProviderError
from .leagues import season_for

log = get_logger(__name__)

UPCOMING_STATUSES = {"NS", "TBD"}
MAX_PAGES = 20


def candidate_seasons(league: ResolvedLeague, today: date) -> List[int]:
    """
    Stagione primaria + le due etichette adiacenti.

    Euristica nota: accettare il primo risultato non vuoto può selezionare la
    stagione sbagliata per leghe con etichettatura irregolare.
    """
    primary = league.season if league.season is not None else season_for(today, league.season_rule)
    return [primary, primary - 1, primary + 1]


def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (ValueError, TypeError):
        return None


def _to_utc_iso(value: Any) -> Optional[str]:
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


def normalize_fixture(item: Any, league: ResolvedLeague, season: int) -> Optional[Fixture]:
    """Record grezzo /fixtures -> Fixture. None se il record è malformato o incompleto (id, kickoff, squadre)."""
    if not isinstance(item, dict):
        return None
    fixture = _obj(item.get("fixture"))
    league_raw = _obj(item.get("league"))
    teams = _obj(item.get("teams"))
    home = _obj(teams.get("home"))
    away = _obj(teams.get("away"))

    fixture_id = _as_int(fixture.get("id"))
    home_id = _as_int(home.get("id"))
    away_id = _as_int(away.get("id"))
    kickoff = _to_utc_iso(fixture.get("date"))
    if fixture_id is None or home_id is None or away_id is None or kickoff is None:
        return None

    return Fixture(
        id=fixture_id,
        kickoff_utc=kickoff,
        home_id=home_id,
        home_name=str(home.get("name") or "").strip(),
        away_id=away_id,
        away_name=str(away.get("name") or "").strip(),
        league_id=_as_int(league_raw.get("id")) or league.id,
        league_name=str(league_raw.get("name") or league.name or ""),
        country=str(league_raw.get("country") or league.country or ""),
        season=_as_int(league_raw.get("season")) or season,
        status=str(_obj(fixture.get("status")).get("short") or ""),
    )


def _days(date_from: date, date_to: date) -> List[date]:
    out = []
    d = date_from
    while d <= date_to:
        out.append(d)
        d += timedelta(days=1)
    return out


class FixturesFetcher:
    """
    Recupera le fixtures future per ogni lega risolta in una finestra di date.

    - fallback stagione: primaria, primaria-1, primaria+1 (primo risultato non vuoto)
    - fallback giornaliero: se la query a finestra fallisce per errore transitorio,
      una query per giorno con merge dei risultati
    - cap per lega e globale, ordinamento per kickoff
    """

    def __init__(
        self,
        client: Any,
        *,
        tz: str = "UTC",
        max_per_league: int = 60,
        max_total: int = 400,
        workers: int = 1,
        today: Optional[date] = None,
    ) -> None:
        self._client = client
        self._tz = tz
        self._max_per_league = max_per_league
        self._max_total = max_total
        self._workers = max(1, workers)
        self._today = today or date.today()

    # -- query ---------------------------------------------------------------

    def _paged(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        page = 1
        total_pages = 1
        while page <= total_pages and page <= MAX_PAGES:
            query = dict(params)
            if page > 1:
                query["page"] = page
            data = self._client.get("/fixtures", params=query)
            response = data.get("response", []) if isinstance(data, dict) else []
            if not isinstance(response, list):
                log.warning("Formato inatteso: 'response' non è una lista (fixtures)")
                break
            out.extend(r for r in response if isinstance(r, dict))
            paging = _obj(data.get("paging"))
            total_pages = _as_int(paging.get("total")) or total_pages
            page += 1
        return out

    def _fetch_window(self, league: ResolvedLeague, season: int, date_from: date, date_to: date) -> List[Dict[str, Any]]:
        base = {"league": league.id, "season": season, "timezone": self._tz}
        try:
            return self._paged({**base, "from": date_from.isoformat(), "to": date_to.isoformat()})
        except TransientProviderError as e:
            log.warning(
                "fixtures_window_failed -> fallback giornaliero league=%s season=%s err=%s",
                league.id,
                season,
                e,
                extra={"league_id": league.id, "season": season},
            )
        merged: List[Dict[str, Any]] = []
        for day in _days(date_from, date_to):
            try:
                merged.extend(self._paged({**base, "date": day.isoformat()}))
            except ProviderError as e:
                log.warning(
                    "fixtures_day_failed league=%s season=%s date=%s err=%s",
                    league.id,
                    season,
                    day.isoformat(),
                    e,
                    extra={"league_id": league.id, "season": season},
                )
        return merged

    # -- per lega ------------------------------------------------------------

    def fetch_league(self, league: ResolvedLeague, date_from: date, date_to: date) -> List[Fixture]:
        for season in candidate_seasons(league, self._today):
            try:
                raw = self._fetch_window(league, season, date_from, date_to)
            except ProviderError as e:
                log.warning(
                    "fixtures_season_failed league=%s season=%s err=%s",
                    league.id,
                    season,
                    e,
                    extra={"league_id": league.id, "season": season, "status": e.status},
                )
                continue

            fixtures: Dict[int, Fixture] = {}
            for item in raw:
                fx = normalize_fixture(item, league, season)
                if fx is None or fx.status not in UPCOMING_STATUSES:
                    continue
                fixtures.setdefault(fx.id, fx)
            if not fixtures:
                continue

            ordered = sorted(fixtures.values(), key=lambda f: (f.kickoff_utc, f.id))
            capped = ordered[: self._max_per_league]
            log.info(
                "fixtures_fetched league=%s season=%s count=%s",
                league.id,
                season,
                len(capped),
                extra={"league_id": league.id, "season": season, "fixtures": len(capped)},
            )
            return capped

        log.info(
            "fixtures_empty league=%s name=%r",
            league.id,
            league.name,
            extra={"league_id": league.id},
        )
        return []

    def fetch(self, leagues: Sequence[ResolvedLeague], date_from: date, date_to: date) -> List[Fixture]:
        if self._workers > 1 and len(leagues) > 1:
            with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="fixtures") as pool:
                per_league = list(pool.map(lambda lg: self.fetch_league(lg, date_from, date_to), leagues))
        else:
            per_league = [self.fetch_league(lg, date_from, date_to) for lg in leagues]

        merged: Dict[int, Fixture] = {}
        for chunk in per_league:
            for fx in chunk:
                merged.setdefault(fx.id, fx)

        ordered = sorted(merged.values(), key=lambda f: (f.kickoff_utc, f.id))
        if len(ordered) > self._max_total:
            log.info("fixtures_total_capped %s -> %s", len(ordered), self._max_total)
            ordered = ordered[: self._max_total]
        return ordered


__all__ = [
    "FixturesFetcher",
    "candidate_seasons",
    "normalize_fixture",
    "UPCOMING_STATUSES",
]
