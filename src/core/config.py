import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


class ConfigurationError(ValueError):
    """Configurazione non valida: errore fatale, il run si interrompe prima di qualsiasi chiamata di rete."""


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    v = value.strip().lower()
    if v in {"0", "false", "no"}:
        return False
    return True


def _clamp_int(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass
class Settings:
    api_football_key: str
    log_level: str

    api_football_max_attempts: int
    api_football_backoff_base: float
    api_football_backoff_factor: float
    api_football_backoff_jitter: float
    api_football_timeout: float
    api_football_min_interval_ms: int

    data_dir: str
    leagues_file: str
    timezone: str

    days_ahead: int
    form_window: int
    max_goals: int
    totals_line: float

    safety_threshold: float
    risk_low_max: float
    risk_medium_max: float

    team_cache_ttl_hours: float
    max_fixtures_per_league: int
    max_fixtures_total: int

    day_horizon_hours: int
    week_max_items: int
    week_per_competition: int

    workers: int

    enable_metrics_file: bool
    metrics_dir: str
    prometheus_textfile: Optional[str]

    @classmethod
    def from_env(cls) -> "Settings":
        key = (os.getenv("API_FOOTBALL_KEY") or os.getenv("APIFOOTBALL_KEY") or "").strip()
        if not key:
            raise ConfigurationError(
                "API_FOOTBALL_KEY non impostata. Aggiungi a .env: API_FOOTBALL_KEY=LA_TUA_CHIAVE"
            )

        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError as e:
                raise ConfigurationError(f"Variabile {name} deve essere un intero (valore: {raw!r})") from e

        def _float(name: str, default: float) -> float:
            raw = os.getenv(name)
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as e:
                raise ConfigurationError(f"Variabile {name} deve essere un numero (valore: {raw!r})") from e

        log_level = os.getenv("RADAR_LOG_LEVEL", "INFO").upper()

        max_attempts = max(1, _int("API_FOOTBALL_MAX_ATTEMPTS", 3))
        backoff_base = _float("API_FOOTBALL_BACKOFF_BASE", 0.8)
        backoff_factor = _float("API_FOOTBALL_BACKOFF_FACTOR", 2.0)
        backoff_jitter = _float("API_FOOTBALL_BACKOFF_JITTER", 0.2)
        timeout = _float("API_FOOTBALL_TIMEOUT", 20.0)
        min_interval_ms = max(0, _int("API_FOOTBALL_MIN_INTERVAL_MS", 250))

        data_dir = os.getenv("RADAR_DATA_DIR", os.path.join("data", "v1"))
        leagues_file = os.getenv("RADAR_LEAGUES_FILE", os.path.join("config", "leagues.json"))
        tz = os.getenv("RADAR_TIMEZONE", "UTC")

        # Range allineati al generatore storico (giorni 1..14, form 3..10, goal 6..12)
        days_ahead = _clamp_int(_int("RADAR_DAYS_AHEAD", 7), 1, 14)
        form_window = _clamp_int(_int("RADAR_FORM_WINDOW", 5), 3, 10)
        max_goals = _clamp_int(_int("RADAR_MAX_GOALS", 8), 6, 12)
        totals_line = _float("RADAR_TOTALS_LINE", 2.5)
        if totals_line <= 0 or float(totals_line).is_integer():
            raise ConfigurationError(
                f"RADAR_TOTALS_LINE deve essere una linea x.5 positiva (valore: {totals_line!r})"
            )

        safety_threshold = _float("RADAR_SAFETY_THRESHOLD", 0.55)
        if not 0.0 <= safety_threshold <= 1.0:
            raise ConfigurationError(f"RADAR_SAFETY_THRESHOLD fuori da [0,1]: {safety_threshold!r}")
        risk_low_max = _float("RADAR_RISK_LOW_MAX", 0.30)
        risk_medium_max = _float("RADAR_RISK_MEDIUM_MAX", 0.45)
        if not 0.0 <= risk_low_max <= risk_medium_max <= 1.0:
            raise ConfigurationError(
                "Soglie rischio non valide: serve 0 <= RADAR_RISK_LOW_MAX <= RADAR_RISK_MEDIUM_MAX <= 1 "
                f"(valori: {risk_low_max!r}, {risk_medium_max!r})"
            )

        team_cache_ttl_hours = _float("RADAR_TEAM_CACHE_TTL_HOURS", 20.0)
        max_fixtures_per_league = max(1, _int("RADAR_MAX_FIXTURES_PER_LEAGUE", 60))
        max_fixtures_total = max(1, _int("RADAR_MAX_FIXTURES_TOTAL", 400))

        day_horizon_hours = max(1, _int("RADAR_DAY_HORIZON_HOURS", 24))
        week_max_items = max(1, _int("RADAR_WEEK_MAX_ITEMS", 10))
        week_per_competition = max(1, _int("RADAR_WEEK_PER_COMPETITION", 3))

        workers = _clamp_int(_int("RADAR_WORKERS", 3), 1, 8)

        enable_metrics_file = _parse_bool(os.getenv("ENABLE_METRICS_FILE"), True)
        metrics_dir = os.getenv("METRICS_DIR", "metrics")
        prometheus_textfile = os.getenv("RADAR_PROMETHEUS_TEXTFILE") or None

        return cls(
            api_football_key=key,
            log_level=log_level,
            api_football_max_attempts=max_attempts,
            api_football_backoff_base=backoff_base,
            api_football_backoff_factor=backoff_factor,
            api_football_backoff_jitter=backoff_jitter,
            api_football_timeout=timeout,
            api_football_min_interval_ms=min_interval_ms,
            data_dir=data_dir,
            leagues_file=leagues_file,
            timezone=tz,
            days_ahead=days_ahead,
            form_window=form_window,
            max_goals=max_goals,
            totals_line=totals_line,
            safety_threshold=safety_threshold,
            risk_low_max=risk_low_max,
            risk_medium_max=risk_medium_max,
            team_cache_ttl_hours=team_cache_ttl_hours,
            max_fixtures_per_league=max_fixtures_per_league,
            max_fixtures_total=max_fixtures_total,
            day_horizon_hours=day_horizon_hours,
            week_max_items=week_max_items,
            week_per_competition=week_per_competition,
            workers=workers,
            enable_metrics_file=enable_metrics_file,
            metrics_dir=metrics_dir,
            prometheus_textfile=prometheus_textfile,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def _reset_settings_cache_for_tests() -> None:
    get_settings.cache_clear()


__all__ = ["Settings", "ConfigurationError", "get_settings", "_reset_settings_cache_for_tests"]
