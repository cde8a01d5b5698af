from datetime import date

from core.models import ResolvedLeague, SEASON_RULE_SPLIT
from providers.api_football.exceptions import PermanentProviderError, ProviderPayloadError, TransientProviderError
from providers.api_football.fixtures_provider import FixturesFetcher, candidate_seasons, normalize_fixture
from providers.api_football.team_history import TeamHistoryProvider

TODAY = date(2025, 5, 10)
BRA = ResolvedLeague(id=71, name="Serie A", country="Brazil")


def raw_fixture(fid, kickoff, home_id=1, away_id=2, status="NS", league_id=71, season=2025):
    return {
        "fixture": {"id": fid, "date": kickoff, "status": {"short": status}},
        "league": {"id": league_id, "name": "Serie A", "country": "Brazil", "season": season},
        "teams": {"home": {"id": home_id, "name": f"Home {home_id}"}, "away": {"id": away_id, "name": f"Away {away_id}"}},
        "goals": {"home": None, "away": None},
    }


class ScriptedClient:
    """Il test decide la risposta per ogni chiamata tramite una funzione (path, params) -> payload."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, path, params=None):
        self.calls.append((path, dict(params or {})))
        return self.handler(path, dict(params or {}))


def test_candidate_seasons_order():
    assert candidate_seasons(BRA, TODAY) == [2025, 2024, 2026]
    split = ResolvedLeague(id=39, name="Premier League", country="England", season_rule=SEASON_RULE_SPLIT)
    assert candidate_seasons(split, TODAY) == [2024, 2023, 2025]
    known = ResolvedLeague(id=1, name="x", country="y", season=2022)
    assert candidate_seasons(known, TODAY) == [2022, 2021, 2023]


def test_normalize_fixture_converts_kickoff_to_utc():
    fx = normalize_fixture(raw_fixture(5, "2025-05-10T16:00:00-03:00"), BRA, 2025)
    assert fx.kickoff_utc == "2025-05-10T19:00:00Z"
    assert (fx.home_id, fx.away_id, fx.status) == (1, 2, "NS")


def test_normalize_fixture_requires_both_teams():
    item = raw_fixture(5, "2025-05-10T16:00:00Z")
    item["teams"]["away"]["id"] = None
    assert normalize_fixture(item, BRA, 2025) is None


def test_window_query_filters_status_sorts_and_caps():
    def handler(path, params):
        return {
            "response": [
                raw_fixture(3, "2025-05-12T20:00:00Z"),
                raw_fixture(1, "2025-05-11T20:00:00Z"),
                raw_fixture(2, "2025-05-11T20:00:00Z"),
                raw_fixture(4, "2025-05-11T18:00:00Z", status="FT"),
                raw_fixture(1, "2025-05-11T20:00:00Z"),
                raw_fixture(6, "2025-05-13T20:00:00Z", status="TBD"),
            ]
        }

    client = ScriptedClient(handler)
    fetcher = FixturesFetcher(client, max_per_league=3, today=TODAY)
    fixtures = fetcher.fetch_league(BRA, TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [1, 2, 3]
    path, params = client.calls[0]
    assert path == "/fixtures"
    assert params["from"] == "2025-05-10" and params["to"] == "2025-05-16"
    assert params["season"] == 2025


def test_pagination_follows_paging_total():
    def handler(path, params):
        page = params.get("page", 1)
        return {"paging": {"current": page, "total": 2}, "response": [raw_fixture(page, f"2025-05-1{page}T20:00:00Z")]}

    client = ScriptedClient(handler)
    fixtures = FixturesFetcher(client, today=TODAY).fetch_league(BRA, TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [1, 2]
    assert [c[1].get("page") for c in client.calls] == [None, 2]


def test_season_fallback_takes_first_non_empty():
    def handler(path, params):
        if params["season"] == 2024:
            return {"response": [raw_fixture(9, "2025-05-11T20:00:00Z", season=2024)]}
        return {"response": []}

    client = ScriptedClient(handler)
    fixtures = FixturesFetcher(client, today=TODAY).fetch_league(BRA, TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [9]
    assert fixtures[0].season == 2024
    assert [c[1]["season"] for c in client.calls] == [2025, 2024]


def test_payload_error_moves_to_next_season():
    def handler(path, params):
        if params["season"] == 2025:
            raise ProviderPayloadError("plan", status=200, errors={"plan": "no access"})
        return {"response": [raw_fixture(7, "2025-05-11T20:00:00Z")]}

    client = ScriptedClient(handler)
    fixtures = FixturesFetcher(client, today=TODAY).fetch_league(BRA, TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [7]
    # nessun fallback giornaliero per un errore non transitorio
    assert all("date" not in c[1] for c in client.calls)


def test_transient_window_error_falls_back_per_day():
    def handler(path, params):
        if "from" in params:
            raise TransientProviderError("timeout")
        if params["date"] == "2025-05-11":
            return {"response": [raw_fixture(11, "2025-05-11T20:00:00Z")]}
        if params["date"] == "2025-05-12":
            raise TransientProviderError("timeout again")
        return {"response": []}

    client = ScriptedClient(handler)
    fixtures = FixturesFetcher(client, today=TODAY).fetch_league(BRA, TODAY, date(2025, 5, 13))
    assert [f.id for f in fixtures] == [11]
    days = [c[1]["date"] for c in client.calls if "date" in c[1]]
    assert days == ["2025-05-10", "2025-05-11", "2025-05-12", "2025-05-13"]


def test_no_fixtures_in_any_season_returns_empty():
    client = ScriptedClient(lambda path, params: {"response": []})
    assert FixturesFetcher(client, today=TODAY).fetch_league(BRA, TODAY, date(2025, 5, 16)) == []
    assert len(client.calls) == 3


def test_fetch_merges_leagues_with_global_cap():
    other = ResolvedLeague(id=72, name="Serie B", country="Brazil")

    def handler(path, params):
        if params["league"] == 71:
            return {"response": [raw_fixture(1, "2025-05-11T20:00:00Z"), raw_fixture(3, "2025-05-13T20:00:00Z")]}
        return {"response": [raw_fixture(2, "2025-05-12T20:00:00Z", league_id=72), raw_fixture(1, "2025-05-11T20:00:00Z")]}

    fetcher = FixturesFetcher(ScriptedClient(handler), max_total=2, workers=2, today=TODAY)
    fixtures = fetcher.fetch([BRA, other], TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [1, 2]


def test_fatal_error_on_every_season_skips_league():
    def handler(path, params):
        if params["league"] == 71:
            raise PermanentProviderError("forbidden", status=403)
        return {"response": [raw_fixture(2, "2025-05-12T20:00:00Z", league_id=72)]}

    other = ResolvedLeague(id=72, name="Serie B", country="Brazil")
    fixtures = FixturesFetcher(ScriptedClient(handler), today=TODAY).fetch([BRA, other], TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [2]


def test_team_history_requests_finished_matches_newest_first():
    def handler(path, params):
        return {
            "response": [
                raw_fixture(1, "2025-04-01T20:00:00Z", status="FT"),
                raw_fixture(3, "2025-04-20T20:00:00Z", status="FT"),
                raw_fixture(2, "2025-04-10T20:00:00Z", status="FT"),
            ]
        }

    client = ScriptedClient(handler)
    items = TeamHistoryProvider(client).last_finished(1, 2)
    assert [i["fixture"]["id"] for i in items] == [3, 2]
    assert client.calls[0][1] == {"team": 1, "last": 2, "status": "FT-AET-PEN", "timezone": "UTC"}


def test_malformed_records_are_skipped_not_fatal():
    broken_teams = raw_fixture(7, "2025-05-11T20:00:00Z")
    broken_teams["teams"] = ["bad"]
    broken_status = raw_fixture(8, "2025-05-11T21:00:00Z")
    broken_status["fixture"]["status"] = "NS"

    def handler(path, params):
        if params["league"] == 71:
            return {
                "response": [broken_teams, broken_status, raw_fixture(9, "2025-05-12T20:00:00Z")],
                "paging": ["?"],
            }
        return {"response": [{"fixture": [], "teams": {"home": "x"}}, raw_fixture(2, "2025-05-12T18:00:00Z", league_id=72)]}

    other = ResolvedLeague(id=72, name="Serie B", country="Brazil")
    fixtures = FixturesFetcher(ScriptedClient(handler), workers=2, today=TODAY).fetch([BRA, other], TODAY, date(2025, 5, 16))
    assert [f.id for f in fixtures] == [2, 9]


def test_team_history_tolerates_malformed_fixture_block():
    def handler(path, params):
        return {"response": [{"fixture": ["bad"]}, raw_fixture(3, "2025-04-20T20:00:00Z", status="FT")]}

    items = TeamHistoryProvider(ScriptedClient(handler)).last_finished(1, 5)
    assert items[0]["fixture"]["id"] == 3
    assert len(items) == 2
