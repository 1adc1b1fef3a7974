"""
Erreurs du moteur d'extraction.

Deux familles ne se traitent pas pareil:
- acquisition (réseau, HTTP, navigateur, proxy): l'URL échoue, l'appelant décide
- inférence (LLM, JSON, map de sélecteurs): seul le palier échoue, la cascade continue

`retryable` indique si une nouvelle tentative identique a une chance d'aboutir.
"""
from typing import Optional, Dict

import httpx
import requests


class ExtractionError(Exception):
    retryable = False

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        url: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.url = url
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        text = self.message
        if self.source:
            text += f" | source={self.source}"
        if self.url:
            text += f" | url={self.url[:50]}..."
        return text

    def to_error_entry(self, url: Optional[str] = None) -> Dict[str, str]:
        """Entrée d'erreur d'un lot: {url, error, error_type}."""
        return {
            "url": url or self.url or "",
            "error": str(self),
            "error_type": type(self).__name__,
        }


# -----------------------------------------------------------------------------
# Transport
# -----------------------------------------------------------------------------

class NetworkError(ExtractionError):
    """Connexion coupée, DNS, refus: transitoire."""
    retryable = True


class TimeoutError(NetworkError):
    pass


class ConnectionError(NetworkError):
    pass


class HTTPError(ExtractionError):
    """Réponse reçue avec un code >= 400. 5xx et 429 se retentent."""

    def __init__(self, message: str, status_code: int, **kwargs):
        self.status_code = status_code
        kwargs.setdefault("retryable", status_code >= 500 or status_code == 429)
        super().__init__(message, **kwargs)

    def __str__(self) -> str:
        return f"HTTP {self.status_code}: {super().__str__()}"


class RateLimitError(HTTPError):

    def __init__(self, message: str = "Rate limit exceeded", **kwargs):
        super().__init__(message, status_code=429, retryable=True, **kwargs)


class BlockedError(HTTPError):
    """Anti-bot (403, parfois 503): retenter à l'identique ne sert à rien."""

    def __init__(self, message: str = "Blocked by anti-bot protection", status_code: int = 403, **kwargs):
        super().__init__(message, status_code=status_code, retryable=False, **kwargs)


class NotFoundError(HTTPError):

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, retryable=False, **kwargs)


# -----------------------------------------------------------------------------
# Acquisition
# -----------------------------------------------------------------------------

class AcquisitionError(ExtractionError):
    """Le HTML n'a pas pu être obtenu (hors code HTTP)."""


class AutomationServiceError(AcquisitionError):
    """ChromeDriver absent, injoignable, ou session refusée."""


class AcquisitionCancelled(AcquisitionError):
    pass


class ProxyUnavailableError(AcquisitionError):
    """Opérateur sans proxy épinglé: on refuse de sortir en direct."""

    def __init__(self, message: str = "No pinned proxy available", operator_id: Optional[int] = None, **kwargs):
        self.operator_id = operator_id
        super().__init__(message, **kwargs)


# -----------------------------------------------------------------------------
# Inférence
# -----------------------------------------------------------------------------

class InferenceError(ExtractionError):
    """Appel LLM en échec, réponse vide, ou rien à soumettre au modèle."""


class ParseError(ExtractionError):
    retryable = False


class JSONParseError(ParseError):
    pass


class SelectorValidationError(ParseError):
    """Map de sélecteurs inutilisable (container manquant)."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        self.field = field
        super().__init__(message, **kwargs)


TRANSIENT_LIBRARY_ERRORS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
    httpx.TimeoutException,
    httpx.ConnectError,
)


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, ExtractionError):
        return exc.retryable
    return isinstance(exc, TRANSIENT_LIBRARY_ERRORS)
