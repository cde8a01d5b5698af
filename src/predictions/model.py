from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from core.logging import get_logger

logger = get_logger("predictions.model")

NEUTRAL_GOAL_RATE = 1.25
RENORM_TOLERANCE = 1e-9
DEGENERATE_MASS = 1e-12


class ModelDegenerateError(ArithmeticError):
    """Massa di probabilità non finita o nulla: gestita internamente con distribuzione neutra."""


@dataclass(frozen=True)
class OutcomeProbabilities:
    lambda_home: float
    lambda_away: float
    p_home_win: float
    p_draw: float
    p_away_win: float
    p_under: float
    p_over: float
    line: float
    degenerate: bool = False

    @property
    def lambda_total(self) -> float:
        return self.lambda_home + self.lambda_away


def poisson_pmf(k: int, lam: float) -> float:
    """P(X=k) con X~Poisson(lam), calcolata in log-space per stabilità."""
    if k < 0:
        return 0.0
    if lam <= 0:
        return 1.0 if k == 0 else 0.0
    return math.exp(k * math.log(lam) - lam - math.lgamma(k + 1))


def poisson_vector(lam: float, max_goals: int) -> List[float]:
    return [poisson_pmf(k, lam) for k in range(max_goals + 1)]


def goal_rates(record: Optional[Mapping]) -> Optional[Tuple[float, float]]:
    """(gol fatti, gol subiti) per partita; None senza storico utilizzabile."""
    if not record:
        return None
    window = record.get("window") or 0
    if window <= 0:
        return None
    return record.get("goals_for", 0) / window, record.get("goals_against", 0) / window


class OutcomeModel:
    """
    Modello Poisson indipendente, volutamente semplice e spiegabile:

      λ_home = clamp(media(attacco casa, difesa ospite)) × vantaggio casa
      λ_away = clamp(media(attacco ospite, difesa casa)) × fattore trasferta

    La griglia (max_goals+1)² di punteggi dà 1X2 e Under/Over sulla linea.
    La massa oltre max_goals viene scartata e il resto rinormalizzato.
    """

    def __init__(
        self,
        *,
        max_goals: int = 8,
        line: float = 2.5,
        home_advantage: float = 1.10,
        away_factor: float = 0.92,
        lambda_min: float = 0.2,
        lambda_max: float = 3.8,
        neutral_rate: float = NEUTRAL_GOAL_RATE,
    ) -> None:
        self.max_goals = max_goals
        self.line = line
        self.home_advantage = home_advantage
        self.away_factor = away_factor
        self.lambda_min = lambda_min
        self.lambda_max = lambda_max
        self.neutral_rate = neutral_rate

    def _clamp(self, x: float) -> float:
        if not math.isfinite(x):
            return (self.lambda_min + self.lambda_max) / 2
        return max(self.lambda_min, min(self.lambda_max, x))

    def lambdas(self, home_record: Optional[Mapping], away_record: Optional[Mapping]) -> Tuple[float, float]:
        h_gf, h_ga = goal_rates(home_record) or (self.neutral_rate, self.neutral_rate)
        a_gf, a_ga = goal_rates(away_record) or (self.neutral_rate, self.neutral_rate)
        lambda_home = self._clamp((h_gf + a_ga) / 2) * self.home_advantage
        lambda_away = self._clamp((a_gf + h_ga) / 2) * self.away_factor
        return lambda_home, lambda_away

    def predict(self, home_record: Optional[Mapping], away_record: Optional[Mapping]) -> OutcomeProbabilities:
        lambda_home, lambda_away = self.lambdas(home_record, away_record)
        return self.from_lambdas(lambda_home, lambda_away)

    def from_lambdas(self, lambda_home: float, lambda_away: float) -> OutcomeProbabilities:
        try:
            return self._grid(lambda_home, lambda_away)
        except ModelDegenerateError as e:
            logger.warning("model_degenerate λh=%s λa=%s: %s -> distribuzione neutra", lambda_home, lambda_away, e)
            return OutcomeProbabilities(
                lambda_home=lambda_home,
                lambda_away=lambda_away,
                p_home_win=1 / 3,
                p_draw=1 / 3,
                p_away_win=1 / 3,
                p_under=0.5,
                p_over=0.5,
                line=self.line,
                degenerate=True,
            )

    def _grid(self, lambda_home: float, lambda_away: float) -> OutcomeProbabilities:
        if not (math.isfinite(lambda_home) and math.isfinite(lambda_away)):
            raise ModelDegenerateError("lambda non finita")

        p_h = poisson_vector(lambda_home, self.max_goals)
        p_a = poisson_vector(lambda_away, self.max_goals)

        home_win = draw = away_win = 0.0
        under = over = 0.0
        for i, ph in enumerate(p_h):
            for j, pa in enumerate(p_a):
                p = ph * pa
                if i > j:
                    home_win += p
                elif i == j:
                    draw += p
                else:
                    away_win += p
                if i + j < self.line:
                    under += p
                else:
                    over += p

        total = home_win + draw + away_win
        if not math.isfinite(total) or total < DEGENERATE_MASS:
            raise ModelDegenerateError(f"massa trattenuta degenere: {total!r}")

        if abs(total - 1.0) > RENORM_TOLERANCE:
            home_win /= total
            draw /= total
            away_win /= total
            under /= total
            over /= total

        return OutcomeProbabilities(
            lambda_home=lambda_home,
            lambda_away=lambda_away,
            p_home_win=home_win,
            p_draw=draw,
            p_away_win=away_win,
            p_under=under,
            p_over=over,
            line=self.line,
        )


__all__ = [
    "OutcomeModel",
    "OutcomeProbabilities",
    "ModelDegenerateError",
    "poisson_pmf",
    "poisson_vector",
    "goal_rates",
    "NEUTRAL_GOAL_RATE",
]
