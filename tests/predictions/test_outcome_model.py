import math

import pytest

from predictions.model import OutcomeModel, poisson_pmf, poisson_vector


def record(gf, ga, window=5):
    return {"window": window, "goals_for": gf, "goals_against": ga, "matches": [{}] * window}


@pytest.mark.parametrize("lam_h,lam_a", [(0.2, 0.2), (1.375, 1.15), (3.3, 0.368), (4.18, 3.5), (0.05, 7.0)])
def test_1x2_sums_to_one(lam_h, lam_a):
    probs = OutcomeModel().from_lambdas(lam_h, lam_a)
    assert probs.p_home_win + probs.p_draw + probs.p_away_win == pytest.approx(1.0, abs=1e-6)
    assert probs.p_under + probs.p_over == pytest.approx(1.0, abs=1e-6)


@pytest.mark.parametrize("lam", [0.3, 1.25, 3.8, 6.0])
def test_pmf_partial_sums_bounded_and_increasing(lam):
    previous = 0.0
    for max_goals in range(0, 25):
        total = sum(poisson_vector(lam, max_goals))
        assert total <= 1.0 + 1e-12
        assert total >= previous
        previous = total
    assert previous == pytest.approx(1.0, abs=1e-3)


def test_pmf_matches_closed_form():
    assert poisson_pmf(2, 1.5) == pytest.approx(math.exp(-1.5) * 1.5 ** 2 / 2)
    assert poisson_pmf(-1, 1.5) == 0.0
    assert poisson_pmf(0, 0.0) == 1.0


def test_lambdas_use_attack_defence_average_and_multipliers():
    model = OutcomeModel()
    lam_h, lam_a = model.lambdas(record(15, 2), record(2, 15))
    assert lam_h == pytest.approx(3.0 * 1.10)
    assert lam_a == pytest.approx(0.4 * 0.92)


def test_lambdas_are_clamped():
    model = OutcomeModel()
    lam_h, lam_a = model.lambdas(record(40, 0), record(0, 40))
    assert lam_h == pytest.approx(3.8 * 1.10)
    assert lam_a == pytest.approx(0.2 * 0.92)


def test_neutral_records_use_neutral_rate():
    model = OutcomeModel()
    neutral = {"window": 0, "goals_for": 0, "goals_against": 0, "matches": [], "neutral": True}
    assert model.lambdas(neutral, None) == (pytest.approx(1.25 * 1.10), pytest.approx(1.25 * 0.92))


def test_home_advantage_tilts_symmetric_matchup():
    probs = OutcomeModel().predict(record(6, 6), record(6, 6))
    assert probs.p_home_win > probs.p_away_win


def test_non_finite_lambda_degrades_to_neutral():
    probs = OutcomeModel().from_lambdas(float("nan"), 1.0)
    assert probs.degenerate is True
    assert (probs.p_home_win, probs.p_draw, probs.p_away_win) == pytest.approx((1 / 3, 1 / 3, 1 / 3))
    assert probs.p_under == 0.5


def test_totals_line_is_configurable():
    low = OutcomeModel(line=1.5).from_lambdas(1.3, 1.1)
    high = OutcomeModel(line=3.5).from_lambdas(1.3, 1.1)
    assert low.p_under < high.p_under
    assert low.line == 1.5
