from typing import Any, Optional


class ProviderError(Exception):
    """Errore finale del provider: porta con sé status HTTP, URL e payload 'errors' del provider."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        url: Optional[str] = None,
        errors: Any = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url
        self.errors = errors


class TransientProviderError(ProviderError):
    """Errori transitori (5xx / timeout / connessione) persistenti oltre i tentativi massimi."""


class RateLimitError(TransientProviderError):
    """Sollevata quando viene superato il rate limit (HTTP 429) dopo tutti i tentativi di retry."""


class PermanentProviderError(ProviderError):
    """4xx non recuperabili o payload malformato (non JSON): nessun retry."""


class ProviderPayloadError(ProviderError):
    """HTTP 2xx con campo 'errors' valorizzato nel body, persistente dopo i retry."""
