from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Mapping, Optional

from core.models import RISK_HIGH, RISK_LOW, RISK_MEDIUM
from .model import OutcomeProbabilities

FORM_BIAS_BONUS = 3.0
FORM_BIAS_MIN_PPG_GAP = 0.5
COMPACT_TOTALS_BONUS = 2.0
COMPACT_TOTALS_MAX_LAMBDA = 3.0

_POINTS = {"W": 3, "D": 1, "L": 0}


@dataclass(frozen=True)
class RiskThresholds:
    low_max: float = 0.30
    medium_max: float = 0.45


@dataclass(frozen=True)
class MarketCandidate:
    market: str
    probability: float      # probabilità di vincita grezza
    loss: float             # probabilità di perdita
    push: float = 0.0       # rimborso (DNB: pareggio)
    side: Optional[str] = None   # "home" / "away" / "over" / "under"


@dataclass(frozen=True)
class MarketPick:
    market: str
    probability: float
    loss: float
    push: float
    risk: str
    score: float

    @property
    def confidence(self) -> float:
        return 1.0 - self.loss


def risk_bucket(loss: float, thresholds: RiskThresholds = RiskThresholds()) -> str:
    """Partizione deterministica e non sovrapposta di [0,1]: ≤low_max low, ≤medium_max medium, altrimenti high."""
    if loss is None or not math.isfinite(loss):
        return RISK_HIGH
    if loss <= thresholds.low_max:
        return RISK_LOW
    if loss <= thresholds.medium_max:
        return RISK_MEDIUM
    return RISK_HIGH


def _fmt_line(line: float) -> str:
    return f"{line:g}"


def build_candidates(probs: OutcomeProbabilities) -> List[MarketCandidate]:
    line = _fmt_line(probs.line)
    return [
        MarketCandidate("1X", probs.p_home_win + probs.p_draw, probs.p_away_win, side="home"),
        MarketCandidate("X2", probs.p_away_win + probs.p_draw, probs.p_home_win, side="away"),
        MarketCandidate(f"Under {line}", probs.p_under, 1.0 - probs.p_under, side="under"),
        MarketCandidate(f"Over {line}", probs.p_over, 1.0 - probs.p_over, side="over"),
        MarketCandidate("DNB Home", probs.p_home_win, probs.p_away_win, push=probs.p_draw, side="home"),
        MarketCandidate("DNB Away", probs.p_away_win, probs.p_home_win, push=probs.p_draw, side="away"),
    ]


def select_candidate(candidates: List[MarketCandidate], safety_threshold: float = 0.55) -> MarketCandidate:
    """
    Tra i candidati con confidenza (1 - loss) ≥ soglia sceglie la loss minima
    (parità: probabilità grezza più alta, poi ordine dei candidati).
    Se nessuno supera la soglia, minimo globale con gli stessi criteri.
    """
    if not candidates:
        raise ValueError("nessun mercato candidato")
    indexed = list(enumerate(candidates))
    safe = [(i, c) for i, c in indexed if (1.0 - c.loss) >= safety_threshold]
    _, best = min(safe or indexed, key=lambda ic: (ic[1].loss, -ic[1].probability, ic[0]))
    return best


def points_per_game(record: Optional[Mapping]) -> Optional[float]:
    if not record:
        return None
    matches = record.get("matches") or []
    if not matches:
        return None
    return sum(_POINTS.get(m.get("result"), 0) for m in matches) / len(matches)


def goals_per_game(record: Optional[Mapping]) -> Optional[float]:
    if not record or not record.get("window"):
        return None
    return (record.get("goals_for", 0) + record.get("goals_against", 0)) / record["window"]


def form_bias(home_record: Optional[Mapping], away_record: Optional[Mapping]) -> Optional[str]:
    """'home' / 'away' se una squadra ha un vantaggio di forma (punti/partita) netto."""
    h = points_per_game(home_record)
    a = points_per_game(away_record)
    if h is None or a is None:
        return None
    if h - a >= FORM_BIAS_MIN_PPG_GAP:
        return "home"
    if a - h >= FORM_BIAS_MIN_PPG_GAP:
        return "away"
    return None


def totals_trend(home_record: Optional[Mapping], away_record: Optional[Mapping], line: float) -> Optional[str]:
    """'over' / 'under' se la media gol combinata delle due squadre sta sopra/sotto la linea."""
    h = goals_per_game(home_record)
    a = goals_per_game(away_record)
    if h is None or a is None:
        return None
    combined = (h + a) / 2
    if combined > line:
        return "over"
    if combined < line:
        return "under"
    return None


def ranking_score(
    candidate: MarketCandidate,
    probs: OutcomeProbabilities,
    home_record: Optional[Mapping] = None,
    away_record: Optional[Mapping] = None,
) -> float:
    """Score usato solo per ordinare gli highlight, mai per scegliere il mercato."""
    score = (1.0 - candidate.loss) * 100 + max(0.0, candidate.probability - 0.50) * 20
    if candidate.side in ("home", "away") and candidate.side == form_bias(home_record, away_record):
        score += FORM_BIAS_BONUS
    elif candidate.side in ("over", "under") and candidate.side == totals_trend(home_record, away_record, probs.line):
        score += FORM_BIAS_BONUS
    if probs.lambda_total <= COMPACT_TOTALS_MAX_LAMBDA:
        score += COMPACT_TOTALS_BONUS
    return score


def pick_market(
    probs: OutcomeProbabilities,
    *,
    safety_threshold: float = 0.55,
    thresholds: RiskThresholds = RiskThresholds(),
    home_record: Optional[Mapping] = None,
    away_record: Optional[Mapping] = None,
) -> MarketPick:
    """Esattamente un MarketPick per fixture."""
    best = select_candidate(build_candidates(probs), safety_threshold)
    return MarketPick(
        market=best.market,
        probability=best.probability,
        loss=best.loss,
        push=best.push,
        risk=risk_bucket(best.loss, thresholds),
        score=ranking_score(best, probs, home_record, away_record),
    )


__all__ = [
    "RiskThresholds",
    "MarketCandidate",
    "MarketPick",
    "risk_bucket",
    "build_candidates",
    "select_candidate",
    "ranking_score",
    "form_bias",
    "totals_trend",
    "points_per_game",
    "pick_market",
]
