from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from core.config import Settings, get_settings
from core.logging import get_logger
from .exceptions import (
    PermanentProviderError,
    ProviderPayloadError,
    RateLimitError,
    TransientProviderError,
)

log = get_logger(__name__)

_BASE_URL = "https://v3.football.api-sports.io"

_RETRIABLE_STATUSES = {429}


class ResponseOutcome(Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class Classification:
    outcome: ResponseOutcome
    reason: str
    errors: Any = None


def _has_errors(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    errors = payload.get("errors")
    if isinstance(errors, (list, dict, str)):
        return len(errors) > 0
    return bool(errors)


def classify_response(status: int, payload: Any) -> Classification:
    """
    Classifica una risposta HTTP del provider, indipendentemente dal loop di retry.

    payload: JSON decodificato, oppure None se il body non era JSON valido.
      - 2xx con JSON pulito            -> SUCCESS
      - 2xx con 'errors' non vuoto     -> RETRY (quirk "200 OK con errore")
      - 2xx non JSON                   -> FATAL
      - 429 / 5xx                      -> RETRY
      - altri codici (4xx, 3xx, ...)   -> FATAL
    """
    if 200 <= status < 300:
        if payload is None:
            return Classification(ResponseOutcome.FATAL, "invalid_json")
        if _has_errors(payload):
            return Classification(ResponseOutcome.RETRY, "embedded_errors", payload.get("errors"))
        return Classification(ResponseOutcome.SUCCESS, "ok")
    errors = payload.get("errors") if isinstance(payload, dict) else payload
    if status in _RETRIABLE_STATUSES:
        return Classification(ResponseOutcome.RETRY, "rate_limit", errors)
    if 500 <= status < 600:
        return Classification(ResponseOutcome.RETRY, f"http_{status}", errors)
    return Classification(ResponseOutcome.FATAL, f"http_{status}", errors)


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {k: v for k, v in params.items() if v is not None and v != ""}


class APIFootballHttpClient:
    """
    Client HTTP con throttle, retry e backoff per API Football (versione requests).

    - Throttle globale: spaziatura minima tra due richieste consecutive, condivisa
      tra thread tramite lock.
    - Retry su rete, 429, 5xx e su 2xx con 'errors' nel body.
    - Nessuna cache: la cache è responsabilità dei chiamanti.

    Telemetria:
      - _last_attempts / _last_retries / _last_latency_ms / _last_status: ultima chiamata
      - _requests_total: richieste HTTP effettive dall'inizio del run
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._session = requests.Session()
        self._session.headers.update(
            {
                "x-apisports-key": self._settings.api_football_key,
                "Accept": "application/json",
            }
        )
        self._max_attempts = self._settings.api_football_max_attempts
        self._base = self._settings.api_football_backoff_base
        self._factor = self._settings.api_football_backoff_factor
        self._jitter = self._settings.api_football_backoff_jitter
        self._timeout = self._settings.api_football_timeout
        self._min_interval = self._settings.api_football_min_interval_ms / 1000.0

        self._throttle_lock = threading.Lock()
        self._last_request_at: Optional[float] = None
        self._counter_lock = threading.Lock()
        self._requests_total = 0

        # Telemetria (popolata ad ogni get)
        self._last_attempts: int = 0
        self._last_retries: int = 0
        self._last_latency_ms: float = 0.0
        self._last_status: Optional[int] = None

    def close(self) -> None:
        self._session.close()

    def _compute_delay(self, attempt: int) -> float:
        # attempt parte da 1
        delay = self._base * (self._factor ** (attempt - 1))
        if self._jitter > 0:
            mult = random.uniform(1 - self._jitter, 1 + self._jitter)
            delay *= mult
        return delay

    def _throttle(self) -> None:
        if self._min_interval <= 0:
            return
        with self._throttle_lock:
            if self._last_request_at is not None:
                wait = self._min_interval - (time.monotonic() - self._last_request_at)
                if wait > 0:
                    time.sleep(wait)
            self._last_request_at = time.monotonic()

    def _record(self, attempt: int, started: float) -> None:
        self._last_attempts = attempt
        self._last_retries = attempt - 1
        self._last_latency_ms = (time.perf_counter() - started) * 1000

    def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        clean = _clean_params(params)
        base_url = _BASE_URL + path
        full_url = f"{base_url}?{urlencode(clean)}" if clean else base_url
        log.debug("api_football GET %s params=%s", path, clean)

        start_overall = time.perf_counter()
        self._last_attempts = 0
        self._last_retries = 0
        self._last_latency_ms = 0.0
        self._last_status = None

        for attempt in range(1, self._max_attempts + 1):
            self._throttle()
            with self._counter_lock:
                self._requests_total += 1
            try:
                resp = self._session.get(base_url, params=clean, timeout=self._timeout)
            except (requests.Timeout, requests.ConnectionError) as e:
                reason = f"network:{e.__class__.__name__}"
                if attempt == self._max_attempts:
                    self._record(attempt, start_overall)
                    self._last_status = None
                    raise TransientProviderError(
                        f"Errore di rete persistente dopo {attempt} tentativi: {e}",
                        url=full_url,
                    ) from e
                wait = self._compute_delay(attempt)
                log.warning(
                    "retry attempt=%s wait=%.2fs reason=%s",
                    attempt,
                    wait,
                    reason,
                    extra={"attempt": attempt, "url": full_url},
                )
                time.sleep(wait)
                continue

            self._last_status = resp.status_code
            try:
                payload = resp.json()
            except ValueError:
                payload = None

            verdict = classify_response(resp.status_code, payload)

            if verdict.outcome is ResponseOutcome.SUCCESS:
                self._record(attempt, start_overall)
                return payload

            if verdict.outcome is ResponseOutcome.FATAL:
                self._record(attempt, start_overall)
                errors = verdict.errors if verdict.errors is not None else {"raw": resp.text[:300]}
                raise PermanentProviderError(
                    f"API-FOOTBALL error ({resp.status_code}) {full_url} :: {errors} non retriable",
                    status=resp.status_code,
                    url=full_url,
                    errors=errors,
                )

            # RETRY
            if attempt == self._max_attempts:
                self._record(attempt, start_overall)
                msg = (
                    f"API-FOOTBALL error ({resp.status_code}) {full_url} :: {verdict.errors} "
                    f"dopo {attempt} tentativi ({verdict.reason})"
                )
                if verdict.reason == "rate_limit":
                    exc_cls = RateLimitError
                elif verdict.reason == "embedded_errors":
                    exc_cls = ProviderPayloadError
                else:
                    exc_cls = TransientProviderError
                raise exc_cls(msg, status=resp.status_code, url=full_url, errors=verdict.errors)

            wait = self._compute_delay(attempt)
            if verdict.reason == "rate_limit":
                retry_after_header = resp.headers.get("Retry-After")
                if retry_after_header:
                    try:
                        wait = max(wait, float(retry_after_header))
                    except ValueError:
                        pass
            log.warning(
                "retry attempt=%s wait=%.2fs reason=%s",
                attempt,
                wait,
                verdict.reason,
                extra={"attempt": attempt, "url": full_url, "status": resp.status_code},
            )
            time.sleep(wait)

        # Non dovrebbe mai arrivare qui
        raise TransientProviderError(f"Fallimento imprevisto path={path}", url=full_url)

    def status(self) -> Dict[str, Any]:
        """Smoke test chiave/quota: GET /status."""
        data = self.get("/status")
        return data.get("response") or {}

    def get_stats(self) -> Dict[str, Any]:
        """
        Ritorna telemetria:
          attempts / retries / latency_ms / last_status: ultima chiamata
          requests_total: richieste HTTP effettuate dall'istanza
        """
        return {
            "attempts": self._last_attempts,
            "retries": self._last_retries,
            "latency_ms": round(self._last_latency_ms, 2),
            "last_status": self._last_status,
            "requests_total": self._requests_total,
        }


def get_http_client(settings: Optional[Settings] = None) -> APIFootballHttpClient:
    """
    Restituisce sempre una nuova istanza per far sì che i test che
    modificano le variabili d'ambiente abbiano effetto immediato.
    """
    return APIFootballHttpClient(settings)


__all__ = [
    "APIFootballHttpClient",
    "ResponseOutcome",
    "Classification",
    "classify_response",
    "get_http_client",
]
