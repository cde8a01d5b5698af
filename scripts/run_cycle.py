import sys

from dotenv import find_dotenv, load_dotenv

from core.config import ConfigurationError, _reset_settings_cache_for_tests, get_settings
from core.logging import get_logger
from monitoring.prometheus_exporter import update_prom_metrics
from radar.pipeline import run_radar_cycle

log = get_logger("cycle")


def _load_env() -> None:
    p = find_dotenv(usecwd=True)
    if p:
        load_dotenv(p, override=False)


def main() -> int:
    """
    1) .env + settings (errori di configurazione: exit 2, nessuna chiamata di rete)
    2) run radar: leghe -> fixtures -> forma -> modello -> documenti
    3) export metriche (textfile Prometheus se configurato)
    """
    _load_env()
    _reset_settings_cache_for_tests()
    try:
        settings = get_settings()
        summary = run_radar_cycle(settings)
    except ConfigurationError as e:
        log.error("config_error %s", e)
        return 2

    update_prom_metrics(settings=settings)

    if not summary.get("written"):
        log.warning("cycle_complete_without_output", extra={"summary": summary})
        return 1
    log.info("cycle_complete", extra={"summary": summary})
    return 0


if __name__ == "__main__":
    sys.exit(main())
