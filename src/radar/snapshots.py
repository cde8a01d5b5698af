from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.models import RISK_ORDER, CalendarMatchRow, Fixture, HighlightItem, TeamFormRecord
from predictions.markets import MarketPick
from predictions.model import OutcomeProbabilities

DAY_HIGHLIGHTS = 3

_HIGHLIGHT_KEYS = (
    "fixture_id",
    "kickoff_utc",
    "country",
    "competition",
    "competition_id",
    "home",
    "away",
    "suggestion_free",
    "risk",
    "confidence",
)


def _r(x: float, nd: int) -> float:
    return round(float(x), nd)


def _parse_kickoff(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def build_calendar_row(
    fixture: Fixture,
    home_form: TeamFormRecord,
    away_form: TeamFormRecord,
    probs: OutcomeProbabilities,
    pick: MarketPick,
) -> CalendarMatchRow:
    """Unità persistita del calendario: fixture + forma delle due squadre + pick."""
    return {
        "fixture_id": fixture.id,
        "kickoff_utc": fixture.kickoff_utc,
        "country": fixture.country,
        "competition": fixture.league_name,
        "competition_id": fixture.league_id,
        "season": fixture.season,
        "home": fixture.home_name,
        "away": fixture.away_name,
        "home_id": fixture.home_id,
        "away_id": fixture.away_id,
        "suggestion_free": pick.market,
        "risk": pick.risk,
        "confidence": _r(pick.confidence, 3),
        "form_home": home_form.get("form", ""),
        "form_away": away_form.get("form", ""),
        "form_home_details": list(home_form.get("matches", [])),
        "form_away_details": list(away_form.get("matches", [])),
        "gf_home": home_form.get("goals_for", 0),
        "ga_home": home_form.get("goals_against", 0),
        "gf_away": away_form.get("goals_for", 0),
        "ga_away": away_form.get("goals_against", 0),
        "pro_model": {
            "lambda_home": _r(probs.lambda_home, 3),
            "lambda_away": _r(probs.lambda_away, 3),
            "p_home_win": _r(probs.p_home_win, 3),
            "p_draw": _r(probs.p_draw, 3),
            "p_away_win": _r(probs.p_away_win, 3),
            "line": probs.line,
            "p_under": _r(probs.p_under, 3),
            "p_over": _r(probs.p_over, 3),
            "neutral_inputs": bool(home_form.get("neutral") or away_form.get("neutral")),
            "pick": {
                "market": pick.market,
                "p": _r(pick.probability, 3),
                "loss": _r(pick.loss, 3),
                "push": _r(pick.push, 3),
                "score": _r(pick.score, 2),
            },
        },
    }


def _kickoff_key(row: Dict[str, Any]) -> tuple:
    return (row.get("kickoff_utc") or "", row.get("fixture_id") or 0)


def _score(row: Dict[str, Any]) -> float:
    return float(((row.get("pro_model") or {}).get("pick") or {}).get("score") or 0.0)


def to_highlight(row: Dict[str, Any]) -> HighlightItem:
    return {k: row[k] for k in _HIGHLIGHT_KEYS if k in row}  # type: ignore[return-value]


def sort_calendar(rows: Iterable[CalendarMatchRow]) -> List[CalendarMatchRow]:
    return sorted(rows, key=_kickoff_key)


def pick_day_highlights(
    rows: Sequence[CalendarMatchRow],
    now: datetime,
    *,
    horizon_hours: int = 24,
    limit: int = DAY_HIGHLIGHTS,
) -> List[HighlightItem]:
    """
    Pool: partite entro l'orizzonte (now .. now+horizon); se meno di `limit`,
    tutte le future; se ancora meno, l'intera finestra. Ordine per score.
    """
    horizon = now + timedelta(hours=horizon_hours)
    timed = [(r, _parse_kickoff(r.get("kickoff_utc"))) for r in rows]

    pool = [r for r, k in timed if k is not None and now <= k <= horizon]
    if len(pool) < limit:
        pool = [r for r, k in timed if k is not None and k >= now]
    if len(pool) < limit:
        pool = list(rows)

    ranked = sorted(pool, key=lambda r: (-_score(r),) + _kickoff_key(r))
    return [to_highlight(r) for r in ranked[:limit]]


def pick_week_items(
    rows: Sequence[CalendarMatchRow],
    *,
    max_items: int = 10,
    per_competition: int = 3,
) -> List[HighlightItem]:
    """Rischio crescente, poi kickoff; al massimo `per_competition` voci per competizione."""
    ranked = sorted(rows, key=lambda r: (RISK_ORDER.get(r.get("risk"), len(RISK_ORDER)),) + _kickoff_key(r))
    per_comp: Dict[Any, int] = {}
    out: List[HighlightItem] = []
    for row in ranked:
        comp = row.get("competition_id") or row.get("competition")
        if per_comp.get(comp, 0) >= per_competition:
            continue
        per_comp[comp] = per_comp.get(comp, 0) + 1
        out.append(to_highlight(row))
        if len(out) >= max_items:
            break
    return out


def assemble_snapshots(
    rows: Sequence[CalendarMatchRow],
    *,
    now: datetime,
    generated_at: str,
    form_window: int,
    days_ahead: int,
    day_horizon_hours: int = 24,
    week_max_items: int = 10,
    week_per_competition: int = 3,
) -> Dict[str, Dict[str, Any]]:
    """I tre documenti: calendario completo, highlight del giorno, highlight della settimana."""
    calendar = sort_calendar(rows)
    return {
        "calendar": {
            "generated_at": generated_at,
            "form_window": form_window,
            "days_ahead": days_ahead,
            "matches": calendar,
        },
        "day": {
            "generated_at": generated_at,
            "highlights": pick_day_highlights(calendar, now, horizon_hours=day_horizon_hours),
        },
        "week": {
            "generated_at": generated_at,
            "items": pick_week_items(
                calendar,
                max_items=week_max_items,
                per_competition=week_per_competition,
            ),
        },
    }


__all__ = [
    "build_calendar_row",
    "to_highlight",
    "sort_calendar",
    "pick_day_highlights",
    "pick_week_items",
    "assemble_snapshots",
]
