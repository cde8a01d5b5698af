from __future__ import annotations

import json
import re
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.config import ConfigurationError
from core.logging import get_logger
from core.models import (
    SEASON_RULE_CALENDAR,
    SEASON_RULE_SPLIT,
    SEASON_RULES,
    LeagueSpec,
    ResolvedLeague,
)
from .exceptions import ProviderError

log = get_logger(__name__)

AUTO_REGIONAL_TOP_DIVISIONS = "regional_top_divisions"
AUTO_RULES = (AUTO_REGIONAL_TOP_DIVISIONS,)

# Pesi dello scoring candidati (ricerca per nome)
W_COUNTRY_MATCH = 6
W_COUNTRY_MISMATCH = -3
W_TYPE_MATCH = 3
W_TYPE_MISMATCH = -1
W_NAME_EXACT = 6
W_NAME_SUBSTRING = 3
W_CURRENT_SEASON = 1

# "<Regione> - 1", "<Regione> - A1", "<Regione> - A"
_REGIONAL_TOP_RE = re.compile(r"^(?P<region>[^\d\-][^\-]*?)\s*-\s*(?:a1|a|1)$")

NATIONAL_EXCLUDE_SUBSTRINGS = (
    "serie",
    "copa",
    "cup",
    "super",
    "u17",
    "u20",
    "u23",
    "women",
    "feminino",
    "youth",
    "play-offs",
    "playoffs",
)


# ---------------------------------------------------------------------------
# Stagioni
# ---------------------------------------------------------------------------


def season_for(today: date, rule: str = SEASON_RULE_CALENDAR) -> int:
    """
    Stagione "etichetta" del provider per una data.
      - calendar: campionati su anno solare (es. Brasile) -> anno corrente
      - split: campionati a cavallo di due anni (es. Europa) -> anno di inizio,
        con cambio stagione a luglio
    """
    if rule == SEASON_RULE_SPLIT:
        return today.year if today.month >= 7 else today.year - 1
    return today.year


# ---------------------------------------------------------------------------
# Parsing configurazione
# ---------------------------------------------------------------------------


def parse_league_spec(entry: Any) -> LeagueSpec:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"League spec non valida (atteso oggetto): {entry!r}")

    season_rule = str(entry.get("season_rule") or SEASON_RULE_CALENDAR).strip().lower()
    if season_rule not in SEASON_RULES:
        raise ConfigurationError(f"season_rule sconosciuta {season_rule!r} in {entry!r}")

    exclude = entry.get("exclude") or ()
    if not isinstance(exclude, (list, tuple)):
        raise ConfigurationError(f"'exclude' deve essere una lista in {entry!r}")

    raw_id = entry.get("id", entry.get("league_id"))
    search = str(entry.get("search") or "").strip() or None
    auto = str(entry.get("auto") or "").strip() or None
    country = str(entry.get("country") or "").strip() or None
    league_type = str(entry.get("type") or "").strip() or None

    forms = sum(1 for v in (raw_id, search, auto) if v not in (None, ""))
    if forms != 1:
        raise ConfigurationError(
            f"League spec deve avere esattamente uno tra 'id', 'search', 'auto': {entry!r}"
        )

    if raw_id not in (None, ""):
        try:
            league_id = int(raw_id)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"League id non intero: {raw_id!r}") from e
        return LeagueSpec(
            league_id=league_id,
            name=str(entry.get("name") or "").strip() or None,
            country=country,
            league_type=league_type,
            season_rule=season_rule,
        )

    if auto:
        if auto not in AUTO_RULES:
            raise ConfigurationError(f"Regola auto sconosciuta {auto!r} (note: {', '.join(AUTO_RULES)})")
        if not country:
            raise ConfigurationError(f"La regola auto {auto!r} richiede 'country': {entry!r}")
        return LeagueSpec(
            auto=auto,
            country=country,
            season_rule=season_rule,
            exclude=tuple(str(x) for x in exclude),
        )

    return LeagueSpec(
        search=search,
        country=country,
        league_type=league_type,
        season_rule=season_rule,
    )


def parse_league_specs(raw: Any) -> List[LeagueSpec]:
    """Accetta {"leagues": [...]} oppure direttamente la lista."""
    entries = raw.get("leagues") if isinstance(raw, dict) else raw
    if not isinstance(entries, list) or not entries:
        raise ConfigurationError("Config non valida: 'leagues' deve essere una lista non vuota.")
    return [parse_league_spec(e) for e in entries]


def load_league_specs(path: Path) -> List[LeagueSpec]:
    if not path.exists():
        raise ConfigurationError(f"File configurazione leghe mancante: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (ValueError, OSError) as e:
        raise ConfigurationError(f"File configurazione leghe illeggibile: {path}: {e}") from e
    return parse_league_specs(raw)


# ---------------------------------------------------------------------------
# Scoring candidati
# ---------------------------------------------------------------------------


def norm(value: Any) -> str:
    text = unicodedata.normalize("NFKD", str(value or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", text).strip().lower()


@dataclass(frozen=True)
class LeagueCandidate:
    id: int
    name: str
    country: str
    league_type: str
    season: Optional[int]
    current: bool


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: LeagueCandidate
    score: int


def _pick_season(seasons: Any) -> tuple:
    items = [s for s in seasons if isinstance(s, dict)] if isinstance(seasons, list) else []
    for s in items:
        if s.get("current") is True and s.get("year") is not None:
            try:
                return int(s["year"]), True
            except (TypeError, ValueError):
                continue
    years = []
    for s in items:
        try:
            years.append(int(s.get("year")))
        except (TypeError, ValueError):
            continue
    return (max(years), False) if years else (None, False)


def _obj(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def candidate_from_response(item: Any) -> Optional[LeagueCandidate]:
    if not isinstance(item, dict):
        return None
    league = _obj(item.get("league"))
    country = _obj(item.get("country"))
    try:
        league_id = int(league.get("id"))
    except (TypeError, ValueError):
        return None
    season, current = _pick_season(item.get("seasons"))
    return LeagueCandidate(
        id=league_id,
        name=str(league.get("name") or ""),
        country=str(country.get("name") or league.get("country") or ""),
        league_type=str(league.get("type") or ""),
        season=season,
        current=current,
    )


def score_league_candidate(
    candidate: LeagueCandidate,
    query: Optional[str] = None,
    country: Optional[str] = None,
    league_type: Optional[str] = None,
) -> int:
    score = 0
    wanted_country = norm(country)
    wanted_type = norm(league_type)
    target = norm(query)
    name = norm(candidate.name)

    if wanted_country:
        score += W_COUNTRY_MATCH if norm(candidate.country) == wanted_country else W_COUNTRY_MISMATCH
    if wanted_type:
        score += W_TYPE_MATCH if norm(candidate.league_type) == wanted_type else W_TYPE_MISMATCH
    if target:
        if name == target:
            score += W_NAME_EXACT
        if name and (target in name or name in target):
            score += W_NAME_SUBSTRING
    if candidate.current:
        score += W_CURRENT_SEASON
    return score


def rank_league_candidates(
    candidates: Iterable[LeagueCandidate],
    query: Optional[str] = None,
    country: Optional[str] = None,
    league_type: Optional[str] = None,
) -> List[ScoredCandidate]:
    """Lista candidati ordinata per score decrescente; a parità vince l'id più basso."""
    scored = [
        ScoredCandidate(c, score_league_candidate(c, query, country, league_type))
        for c in candidates
    ]
    scored.sort(key=lambda s: (-s.score, s.candidate.id))
    return scored


def regional_division_region(name: str, exclude: Sequence[str] = ()) -> Optional[str]:
    """
    Ritorna la regione se il nome indica una massima divisione statale/regionale
    (es. "Paulista - A1" -> "paulista"), altrimenti None.
    """
    n = norm(name)
    blocked = tuple(NATIONAL_EXCLUDE_SUBSTRINGS) + tuple(norm(x) for x in exclude if x)
    if any(b and b in n for b in blocked):
        return None
    m = _REGIONAL_TOP_RE.match(n)
    if not m:
        return None
    return m.group("region").strip()


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class LeagueResolver:
    """
    Trasforma le LeagueSpec configurate in ResolvedLeague concrete.
    Errori provider su una singola spec: log + skip (non fatali).
    """

    def __init__(self, client: Any, today: Optional[date] = None, workers: int = 1) -> None:
        self._client = client
        self._today = today or date.today()
        self._workers = max(1, workers)

    def resolve(self, specs: Sequence[LeagueSpec]) -> List[ResolvedLeague]:
        if self._workers > 1 and len(specs) > 1:
            with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="leagues") as pool:
                per_spec = list(pool.map(self.resolve_one, specs))
        else:
            per_spec = [self.resolve_one(spec) for spec in specs]

        # Dedup per id: vince la prima occorrenza nell'ordine di configurazione
        out: List[ResolvedLeague] = []
        seen: set = set()
        for resolved in per_spec:
            for league in resolved:
                if league.id in seen:
                    continue
                seen.add(league.id)
                out.append(league)
        return out

    def resolve_one(self, spec: LeagueSpec) -> List[ResolvedLeague]:
        try:
            if spec.kind == "explicit":
                return [
                    ResolvedLeague(
                        id=int(spec.league_id),
                        name=spec.name or "",
                        country=spec.country or "",
                        season_rule=spec.season_rule,
                        league_type=spec.league_type or "",
                    )
                ]
            if spec.kind == "auto":
                return self._expand_regional(spec)
            best = self._search(spec)
            return [best] if best else []
        except ProviderError as e:
            log.warning(
                "league_resolve_failed spec=%s err=%s",
                spec,
                e,
                extra={"status": e.status, "url": e.url},
            )
            return []

    def _fetch_leagues(self, params: Dict[str, Any]) -> List[LeagueCandidate]:
        data = self._client.get("/leagues", params=params)
        response = data.get("response", []) if isinstance(data, dict) else []
        if not isinstance(response, list):
            log.warning("Formato inatteso: 'response' non è una lista (leagues)")
            return []
        out = []
        for item in response:
            if isinstance(item, dict):
                cand = candidate_from_response(item)
                if cand is not None:
                    out.append(cand)
        return out

    def _search(self, spec: LeagueSpec) -> Optional[ResolvedLeague]:
        season = season_for(self._today, spec.season_rule)
        # Il provider non accetta 'search' insieme a country/type: filtriamo in locale via scoring
        candidates = self._fetch_leagues({"search": spec.search, "season": season})
        if not candidates:
            candidates = self._fetch_leagues({"search": spec.search})
        if not candidates:
            log.warning("League not found: search=%r country=%r", spec.search, spec.country)
            return None

        ranked = rank_league_candidates(candidates, spec.search, spec.country, spec.league_type)
        best = ranked[0].candidate
        log.info(
            "league_resolved search=%r -> id=%s name=%r country=%r score=%s",
            spec.search,
            best.id,
            best.name,
            best.country,
            ranked[0].score,
            extra={"league_id": best.id, "season": best.season},
        )
        return ResolvedLeague(
            id=best.id,
            name=best.name,
            country=best.country,
            season_rule=spec.season_rule,
            season=best.season if best.current else None,
            league_type=best.league_type,
        )

    def _expand_regional(self, spec: LeagueSpec) -> List[ResolvedLeague]:
        season = season_for(self._today, spec.season_rule)
        candidates = self._fetch_leagues({"country": spec.country, "season": season})

        by_region: Dict[str, List[LeagueCandidate]] = {}
        for cand in candidates:
            if cand.league_type and norm(cand.league_type) != "league":
                continue
            region = regional_division_region(cand.name, spec.exclude)
            if region is None:
                continue
            by_region.setdefault(region, []).append(cand)

        out: List[ResolvedLeague] = []
        for region in sorted(by_region):
            ranked = rank_league_candidates(by_region[region], country=spec.country, league_type="League")
            best = ranked[0].candidate
            out.append(
                ResolvedLeague(
                    id=best.id,
                    name=best.name,
                    country=best.country or (spec.country or ""),
                    season_rule=spec.season_rule,
                    season=best.season if best.current else None,
                    league_type=best.league_type,
                )
            )
        log.info(
            "league_auto_expanded country=%r rule=%s regions=%s",
            spec.country,
            spec.auto,
            len(out),
            extra={"count": len(out), "season": season},
        )
        return out


__all__ = [
    "AUTO_REGIONAL_TOP_DIVISIONS",
    "LeagueCandidate",
    "ScoredCandidate",
    "LeagueResolver",
    "season_for",
    "parse_league_spec",
    "parse_league_specs",
    "load_league_specs",
    "candidate_from_response",
    "score_league_candidate",
    "rank_league_candidates",
    "regional_division_region",
    "norm",
]
