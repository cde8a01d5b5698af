import json
import sys

from dotenv import find_dotenv, load_dotenv

from core.config import ConfigurationError, get_settings
from core.logging import get_logger
from providers.api_football.exceptions import ProviderError
from providers.api_football.http_client import get_http_client

log = get_logger("scripts.provider_status")


def main() -> int:
    """Smoke test chiave/quota (GET /status) da lanciare prima di un run."""
    p = find_dotenv(usecwd=True)
    if p:
        load_dotenv(p, override=False)
    try:
        settings = get_settings()
    except ConfigurationError as e:
        log.error("config_error %s", e)
        return 2

    client = get_http_client(settings)
    try:
        info = client.status()
    except ProviderError as e:
        log.error("provider_status_failed %s", e, extra={"status": e.status, "url": e.url})
        return 1
    finally:
        client.close()

    requests_info = info.get("requests") if isinstance(info, dict) else None
    log.info("provider_status_ok", extra={"summary": requests_info})
    print(json.dumps(info, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
