from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.config import Settings, get_settings
from core.logging import get_logger
from core.metrics import write_metrics_snapshot
from core.models import CalendarMatchRow, Fixture, TeamFormRecord
from core.persistence import (
    CALENDAR_FILE_NAME,
    RADAR_DAY_FILE_NAME,
    RADAR_WEEK_FILE_NAME,
    TEAM_CACHE_FILE_NAME,
    write_documents_atomic,
)
from predictions.form_cache import TeamFormCache, format_ts
from predictions.markets import RiskThresholds, pick_market
from predictions.model import OutcomeModel
from predictions.team_form import TeamFormAggregator
from providers.api_football.fixtures_provider import FixturesFetcher
from providers.api_football.http_client import get_http_client
from providers.api_football.leagues import LeagueResolver, load_league_specs
from providers.api_football.team_history import TeamHistoryProvider
from .snapshots import assemble_snapshots, build_calendar_row

log = get_logger("radar.pipeline")


def _team_jobs(fixtures: List[Fixture]) -> List[Tuple[int, int, int]]:
    """(team_id, league_id, season) unici, nell'ordine di apparizione."""
    seen = set()
    jobs: List[Tuple[int, int, int]] = []
    for fx in fixtures:
        for team_id in (fx.home_id, fx.away_id):
            if team_id in seen:
                continue
            seen.add(team_id)
            jobs.append((team_id, fx.league_id, fx.season))
    return jobs


def _collect_forms(
    aggregator: TeamFormAggregator,
    fixtures: List[Fixture],
    now: datetime,
    workers: int,
) -> Dict[int, TeamFormRecord]:
    jobs = _team_jobs(fixtures)

    def _one(job: Tuple[int, int, int]) -> Tuple[int, TeamFormRecord]:
        team_id, league_id, season = job
        return team_id, aggregator.get_form(team_id, league_id=league_id, season=season, now=now)

    if workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="team-form") as pool:
            return dict(pool.map(_one, jobs))
    return dict(_one(j) for j in jobs)


def build_rows(
    fixtures: List[Fixture],
    forms: Dict[int, TeamFormRecord],
    model: OutcomeModel,
    *,
    safety_threshold: float,
    thresholds: RiskThresholds,
) -> List[CalendarMatchRow]:
    """Una riga di calendario (con esattamente un pick) per ogni fixture."""
    rows: List[CalendarMatchRow] = []
    for fx in fixtures:
        home = forms[fx.home_id]
        away = forms[fx.away_id]
        probs = model.predict(home, away)
        pick = pick_market(
            probs,
            safety_threshold=safety_threshold,
            thresholds=thresholds,
            home_record=home,
            away_record=away,
        )
        rows.append(build_calendar_row(fx, home, away, probs, pick))
    return rows


def run_radar_cycle(
    settings: Optional[Settings] = None,
    client: Any = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Un run batch completo:
      1) parsing leghe (ConfigurationError prima di qualsiasi chiamata di rete)
      2) risoluzione leghe -> fixtures della finestra
      3) forma squadre (cache + refresh concorrente)
      4) modello + mercato per fixture
      5) scrittura atomica dei tre documenti, della cache e di last_run.json

    Ritorna un riepilogo del run.
    """
    started = time.monotonic()
    settings = settings or get_settings()
    specs = load_league_specs(Path(settings.leagues_file))

    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    today = now.date()
    base_dir = Path(settings.data_dir)
    cache_path = base_dir / TEAM_CACHE_FILE_NAME

    owns_client = client is None
    client = client or get_http_client(settings)

    log.info("cycle_start", extra={"count": len(specs)})
    try:
        resolver = LeagueResolver(client, today=today, workers=settings.workers)
        leagues = resolver.resolve(specs)
        summary: Dict[str, Any] = {
            "generated_at": format_ts(now),
            "leagues": len(leagues),
            "fixtures": 0,
            "teams": {},
            "highlights": {"day": 0, "week": 0},
            "written": False,
        }
        if not leagues:
            # Provider irraggiungibile o config senza match: i documenti precedenti restano validi
            log.error("no_leagues_resolved -> documenti non aggiornati")
            summary["requests_total"] = _requests_total(client)
            summary["duration_ms"] = round((time.monotonic() - started) * 1000, 1)
            write_metrics_snapshot(summary, settings)
            return summary

        fetcher = FixturesFetcher(
            client,
            tz=settings.timezone,
            max_per_league=settings.max_fixtures_per_league,
            max_total=settings.max_fixtures_total,
            workers=settings.workers,
            today=today,
        )
        date_to = today + timedelta(days=settings.days_ahead - 1)
        fixtures = fetcher.fetch(leagues, today, date_to)
        log.info("fixtures_fetched", extra={"fixtures": len(fixtures)})

        cache = TeamFormCache.load(
            cache_path,
            ttl_hours=settings.team_cache_ttl_hours,
            form_window=settings.form_window,
        )
        aggregator = TeamFormAggregator(
            TeamHistoryProvider(client, tz=settings.timezone),
            cache,
            settings.form_window,
        )
        forms = _collect_forms(aggregator, fixtures, now, settings.workers)

        model = OutcomeModel(max_goals=settings.max_goals, line=settings.totals_line)
        rows = build_rows(
            fixtures,
            forms,
            model,
            safety_threshold=settings.safety_threshold,
            thresholds=RiskThresholds(settings.risk_low_max, settings.risk_medium_max),
        )

        generated_at = format_ts(now)
        docs = assemble_snapshots(
            rows,
            now=now,
            generated_at=generated_at,
            form_window=settings.form_window,
            days_ahead=settings.days_ahead,
            day_horizon_hours=settings.day_horizon_hours,
            week_max_items=settings.week_max_items,
            week_per_competition=settings.week_per_competition,
        )
        write_documents_atomic(
            {
                CALENDAR_FILE_NAME: docs["calendar"],
                RADAR_DAY_FILE_NAME: docs["day"],
                RADAR_WEEK_FILE_NAME: docs["week"],
            },
            base_dir,
        )
        cache.save(cache_path)

        summary.update(
            {
                "fixtures": len(fixtures),
                "teams": dict(aggregator.stats, total=len(forms)),
                "highlights": {"day": len(docs["day"]["highlights"]), "week": len(docs["week"]["items"])},
                "written": True,
                "requests_total": _requests_total(client),
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            }
        )
        log.info("snapshots_written", extra={"summary": summary})
        write_metrics_snapshot(summary, settings)
        return summary
    finally:
        if owns_client:
            client.close()


def _requests_total(client: Any) -> Optional[int]:
    stats = getattr(client, "get_stats", None)
    if stats is None:
        return None
    return stats().get("requests_total")


__all__ = ["run_radar_cycle", "build_rows"]
