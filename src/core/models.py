from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TypedDict

SEASON_RULE_CALENDAR = "calendar"
SEASON_RULE_SPLIT = "split"
SEASON_RULES = (SEASON_RULE_CALENDAR, SEASON_RULE_SPLIT)

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_ORDER = {RISK_LOW: 0, RISK_MEDIUM: 1, RISK_HIGH: 2}


@dataclass(frozen=True)
class LeagueSpec:
    """
    Voce di configurazione lega. Esattamente una delle tre forme:
      - league_id: id esplicito
      - search (+ country / league_type opzionali): ricerca fuzzy
      - auto: regola di espansione (es. "regional_top_divisions") per un paese
    """

    league_id: Optional[int] = None
    search: Optional[str] = None
    country: Optional[str] = None
    league_type: Optional[str] = None
    auto: Optional[str] = None
    name: Optional[str] = None
    season_rule: str = SEASON_RULE_CALENDAR
    exclude: tuple = ()

    @property
    def kind(self) -> str:
        if self.league_id is not None:
            return "explicit"
        if self.auto:
            return "auto"
        return "search"


@dataclass(frozen=True)
class ResolvedLeague:
    id: int
    name: str
    country: str
    season_rule: str = SEASON_RULE_CALENDAR
    season: Optional[int] = None  # stagione "current" del provider, se nota
    league_type: str = ""


@dataclass(frozen=True)
class Fixture:
    id: int
    kickoff_utc: str          # ISO 8601, UTC
    home_id: int
    home_name: str
    away_id: int
    away_name: str
    league_id: int
    league_name: str
    country: str
    season: int
    status: str = "NS"


class FormMatch(TypedDict):
    venue: str                # H / A
    opponent: str
    score: str                # "gf-ga" dal punto di vista della squadra
    date_utc: Optional[str]
    result: str               # W / D / L


class TeamFormRecord(TypedDict, total=False):
    team_id: int
    league_id: Optional[int]
    season: Optional[int]
    window: int
    matches: List[FormMatch]
    goals_for: int
    goals_against: int
    form: str
    neutral: bool
    updated_at: str
    form_window: int


class HighlightItem(TypedDict, total=False):
    fixture_id: int
    kickoff_utc: str
    country: str
    competition: str
    competition_id: int
    home: str
    away: str
    suggestion_free: str
    risk: str
    confidence: float


class CalendarMatchRow(HighlightItem, total=False):
    season: int
    home_id: int
    away_id: int
    form_home: str
    form_away: str
    form_home_details: List[FormMatch]
    form_away_details: List[FormMatch]
    gf_home: int
    ga_home: int
    gf_away: int
    ga_away: int
    pro_model: Dict[str, Any]


__all__ = [
    "LeagueSpec",
    "ResolvedLeague",
    "Fixture",
    "FormMatch",
    "TeamFormRecord",
    "HighlightItem",
    "CalendarMatchRow",
    "SEASON_RULE_CALENDAR",
    "SEASON_RULE_SPLIT",
    "SEASON_RULES",
    "RISK_LOW",
    "RISK_MEDIUM",
    "RISK_HIGH",
    "RISK_ORDER",
]
