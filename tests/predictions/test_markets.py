import math

import pytest

from predictions.markets import (
    MarketCandidate,
    RiskThresholds,
    build_candidates,
    form_bias,
    pick_market,
    ranking_score,
    risk_bucket,
    select_candidate,
    totals_trend,
)
from predictions.model import OutcomeModel


def record(gf, ga, results):
    return {
        "window": len(results),
        "goals_for": gf,
        "goals_against": ga,
        "matches": [{"result": r} for r in results],
        "form": results,
    }


@pytest.mark.parametrize(
    "loss,bucket",
    [
        (0.0, "low"),
        (0.30, "low"),
        (0.3000001, "medium"),
        (0.45, "medium"),
        (0.4500001, "high"),
        (1.0, "high"),
        (float("nan"), "high"),
    ],
)
def test_risk_bucket_partition(loss, bucket):
    assert risk_bucket(loss) == bucket


def test_risk_bucket_is_total_over_unit_interval():
    seen = set()
    for i in range(0, 1001):
        seen.add(risk_bucket(i / 1000))
    assert seen == {"low", "medium", "high"}


def test_risk_bucket_custom_thresholds():
    assert risk_bucket(0.35, RiskThresholds(low_max=0.4, medium_max=0.5)) == "low"


def test_scenario_a_dominant_home_side_is_low_risk():
    home = record(15, 2, "WWWWW")
    away = record(2, 15, "LLLLL")
    probs = OutcomeModel().predict(home, away)
    pick = pick_market(probs, home_record=home, away_record=away)
    assert pick.loss < 0.30
    assert pick.risk == "low"
    assert pick.market == "1X"


def test_scenario_b_balanced_teams_never_low():
    home = record(6.25, 6.25, "WDLWD")
    away = record(6.25, 6.25, "DWLDW")
    probs = OutcomeModel().predict(home, away)
    pick = pick_market(probs, home_record=home, away_record=away)
    assert pick.risk in {"medium", "high"}


def test_candidates_and_dnb_push():
    probs = OutcomeModel().from_lambdas(1.5, 1.0)
    by_market = {c.market: c for c in build_candidates(probs)}
    assert set(by_market) == {"1X", "X2", "Under 2.5", "Over 2.5", "DNB Home", "DNB Away"}
    assert by_market["DNB Home"].push == pytest.approx(probs.p_draw)
    assert by_market["DNB Home"].loss == pytest.approx(by_market["1X"].loss)
    assert by_market["Under 2.5"].loss == pytest.approx(probs.p_over)


def test_select_prefers_lowest_loss_then_probability():
    cands = [
        MarketCandidate("DNB Home", 0.5, 0.2, push=0.3),
        MarketCandidate("1X", 0.8, 0.2),
        MarketCandidate("Over 2.5", 0.7, 0.3),
    ]
    assert select_candidate(cands).market == "1X"


def test_select_falls_back_to_global_minimum_when_nothing_is_safe():
    cands = [MarketCandidate("A", 0.3, 0.5), MarketCandidate("B", 0.35, 0.48)]
    assert select_candidate(cands, safety_threshold=0.9).market == "B"


def test_select_empty_raises():
    with pytest.raises(ValueError):
        select_candidate([])


def test_form_bias_and_totals_trend():
    strong = record(12, 3, "WWWWD")
    weak = record(4, 10, "LLDLL")
    assert form_bias(strong, weak) == "home"
    assert form_bias(weak, strong) == "away"
    assert form_bias(strong, strong) is None
    assert totals_trend(record(20, 10, "WWWWW"), record(15, 10, "WWWWW"), 2.5) == "over"
    assert totals_trend(record(3, 2, "WDWDW"), record(2, 3, "DLDLD"), 2.5) == "under"
    assert form_bias(None, strong) is None


def test_ranking_score_components():
    probs = OutcomeModel().from_lambdas(1.4, 1.0)
    cand = MarketCandidate("1X", 0.8, 0.2, side="home")
    base = (1 - 0.2) * 100 + (0.8 - 0.5) * 20
    assert ranking_score(cand, probs) == pytest.approx(base + 2.0)
    strong = record(12, 3, "WWWWD")
    weak = record(4, 10, "LLDLL")
    assert ranking_score(cand, probs, strong, weak) == pytest.approx(base + 2.0 + 3.0)
    loose = OutcomeModel().from_lambdas(2.5, 1.5)
    assert ranking_score(cand, loose) == pytest.approx(base)


def test_pick_market_confidence_is_one_minus_loss():
    probs = OutcomeModel().from_lambdas(2.0, 0.6)
    pick = pick_market(probs)
    assert pick.confidence == pytest.approx(1 - pick.loss)
    assert not math.isnan(pick.score)
