"""
Configuration centrale - variables d'environnement.

Le fichier .env (s'il existe) est chargé une seule fois à l'import.
Toutes les valeurs ont un défaut utilisable en dev.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# LLM
# =============================================================================

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "claude-3-haiku-20240307")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_DETAIL_MAX_TOKENS = int(os.getenv("LLM_DETAIL_MAX_TOKENS", "2048"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))

# =============================================================================
# STOCKAGE
# =============================================================================

DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'adaptive_scraper.db'}")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")

SELECTOR_CACHE_BACKEND = os.getenv("SELECTOR_CACHE_BACKEND", "file")  # file | redis
SELECTOR_CACHE_DIR = Path(os.getenv("SELECTOR_CACHE_DIR", str(DATA_DIR)))

# =============================================================================
# PROXY (résidentiel, routé par ville)
# =============================================================================

PROXY_ENABLED = _env_bool("PROXY_ENABLED", True)
PROXY_HOST = os.getenv("PROXY_HOST", "pr.oxylabs.io")
PROXY_PORT = int(os.getenv("PROXY_PORT", "7777"))
PROXY_ACCOUNT = os.getenv("PROXY_ACCOUNT", "")
PROXY_PASSWORD = os.getenv("PROXY_PASSWORD", "")
# {account} et {city} sont substitués; sans {city} la ville est ajoutée en suffixe
PROXY_USERNAME_TEMPLATE = os.getenv(
    "PROXY_USERNAME_TEMPLATE", "customer-{account}-cc-US-city-{city}"
)
# Ville utilisée quand l'opérateur n'en a choisi aucune (vide = pas de proxy)
PROXY_DEFAULT_CITY = os.getenv("PROXY_DEFAULT_CITY", "")
IP_ECHO_URL = os.getenv("IP_ECHO_URL", "https://ip.oxylabs.io/location")
IP_ECHO_TIMEOUT = float(os.getenv("IP_ECHO_TIMEOUT", "15"))
PROXY_LOG_PATH = Path(os.getenv("PROXY_LOG_PATH", str(DATA_DIR / "proxy_logs" / "proxy_assignments.log")))

# =============================================================================
# NAVIGATEUR
# =============================================================================

CHROMEDRIVER_PATH = os.getenv("CHROMEDRIVER_PATH") or os.getenv("WEBDRIVER_CHROME_DRIVER") or "/usr/local/bin/chromedriver"
CHROMEDRIVER_URL = os.getenv("CHROMEDRIVER_URL", "http://localhost:9515")
CHROME_BIN = os.getenv("CHROME_BIN")
BROWSER_PROFILE_ROOT = Path(os.getenv("BROWSER_PROFILE_ROOT", "./tmp"))
BROWSER_PROFILE_MAX_AGE = int(os.getenv("BROWSER_PROFILE_MAX_AGE", "3600"))

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class ProxyCredentials:
    """Identifiants upstream d'un proxy (username calculé, reste = config)."""
    username: str
    password: str
    host: str = PROXY_HOST
    port: int = PROXY_PORT
    location: Optional[str] = None

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"

    def to_url(self) -> str:
        return f"http://{self.username}:{self.password}@{self.endpoint}"

    def to_dict(self) -> Dict[str, str]:
        url = self.to_url()
        return {"http": url, "https": url}

    def with_session(self, session_token: str) -> "ProxyCredentials":
        """Variante sticky: <username>-session-<token> force une nouvelle IP upstream."""
        return ProxyCredentials(
            username=f"{self.username}-session-{session_token}",
            password=self.password,
            host=self.host,
            port=self.port,
            location=self.location,
        )


def build_upstream_username(city_key: str, template: Optional[str] = None, account: Optional[str] = None) -> str:
    """Construit le username upstream pour une ville donnée."""
    template = template if template is not None else PROXY_USERNAME_TEMPLATE
    account = account if account is not None else PROXY_ACCOUNT
    if "{city}" in template:
        return template.format(account=account, city=city_key)
    return f"{template.format(account=account)}-{city_key}"
