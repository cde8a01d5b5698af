from datetime import datetime, timedelta, timezone

from core.models import Fixture
from predictions.markets import pick_market
from predictions.model import OutcomeModel
from predictions.team_form import neutral_form
from radar.snapshots import (
    assemble_snapshots,
    build_calendar_row,
    pick_day_highlights,
    pick_week_items,
)

NOW = datetime(2025, 5, 10, 12, 0, tzinfo=timezone.utc)


def _iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def row(fid, hours_from_now, score, risk="medium", competition_id=71):
    return {
        "fixture_id": fid,
        "kickoff_utc": _iso(NOW + timedelta(hours=hours_from_now)),
        "country": "Brazil",
        "competition": f"League {competition_id}",
        "competition_id": competition_id,
        "home": f"H{fid}",
        "away": f"A{fid}",
        "suggestion_free": "1X",
        "risk": risk,
        "confidence": 0.7,
        "pro_model": {"pick": {"score": score}},
    }


def test_build_calendar_row_shape():
    fx = Fixture(
        id=1,
        kickoff_utc="2025-05-11T19:00:00Z",
        home_id=10,
        home_name="Palmeiras",
        away_id=20,
        away_name="Santos",
        league_id=71,
        league_name="Serie A",
        country="Brazil",
        season=2025,
        status="NS",
    )
    home = neutral_form(10)
    away = neutral_form(20)
    probs = OutcomeModel().predict(home, away)
    pick = pick_market(probs)
    r = build_calendar_row(fx, home, away, probs, pick)
    assert r["fixture_id"] == 1
    assert r["competition"] == "Serie A"
    assert r["suggestion_free"] == pick.market
    assert r["risk"] in {"low", "medium", "high"}
    assert r["confidence"] == round(1 - pick.loss, 3)
    assert r["pro_model"]["neutral_inputs"] is True
    assert r["pro_model"]["line"] == 2.5
    assert r["form_home"] == ""


def test_day_highlights_use_horizon_when_enough():
    rows = [row(1, 2, 80), row(2, 5, 90), row(3, 20, 70), row(4, 30, 99)]
    out = pick_day_highlights(rows, NOW)
    assert [h["fixture_id"] for h in out] == [2, 1, 3]
    assert "pro_model" not in out[0]


def test_day_highlights_widen_to_future_window():
    # meno di 3 partite entro 24h: il pool si allarga alle future della finestra
    rows = [row(1, -3, 99), row(2, 5, 80), row(3, 50, 85), row(4, 100, 70)]
    out = pick_day_highlights(rows, NOW)
    assert [h["fixture_id"] for h in out] == [3, 2, 4]


def test_day_highlights_widen_to_whole_window():
    rows = [row(1, -3, 99), row(2, 5, 80), row(3, -10, 60)]
    out = pick_day_highlights(rows, NOW)
    assert [h["fixture_id"] for h in out] == [1, 2, 3]


def test_day_highlights_fewer_only_when_window_is_small():
    rows = [row(1, 50, 70), row(2, 5, 80)]
    assert len(pick_day_highlights(rows, NOW)) == 2
    assert pick_day_highlights([], NOW) == []


def test_day_highlights_tie_break_kickoff_then_id():
    rows = [row(3, 5, 80), row(2, 5, 80), row(1, 6, 80)]
    assert [h["fixture_id"] for h in pick_day_highlights(rows, NOW)] == [2, 3, 1]


def test_week_caps_per_competition():
    same = [row(i, i, 90 + i, risk="low", competition_id=71) for i in range(1, 6)]
    others = [row(10 + i, i, 50, risk="medium", competition_id=72 + i) for i in range(3)]
    items = pick_week_items(same + others)
    comps = [it["competition_id"] for it in items]
    assert comps.count(71) == 3
    assert [it["fixture_id"] for it in items[:3]] == [1, 2, 3]
    assert len(items) == 6


def test_week_orders_by_risk_then_kickoff_and_limits():
    rows = [row(i, i, 50, risk="high" if i % 2 else "low", competition_id=i) for i in range(1, 25)]
    items = pick_week_items(rows, max_items=10)
    assert len(items) == 10
    assert all(it["risk"] == "low" for it in items)
    assert [it["fixture_id"] for it in items] == [2, 4, 6, 8, 10, 12, 14, 16, 18, 20]


def test_assemble_snapshots_documents():
    rows = [row(2, 10, 80), row(1, 5, 70)]
    docs = assemble_snapshots(rows, now=NOW, generated_at="2025-05-10T12:00:00Z", form_window=5, days_ahead=7)
    assert [m["fixture_id"] for m in docs["calendar"]["matches"]] == [1, 2]
    assert docs["calendar"]["form_window"] == 5
    assert docs["calendar"]["days_ahead"] == 7
    assert docs["day"]["generated_at"] == "2025-05-10T12:00:00Z"
    assert len(docs["day"]["highlights"]) == 2
    assert len(docs["week"]["items"]) == 2
