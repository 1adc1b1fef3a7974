"""
Helpers URL: résolution relative, validation, clé de domaine.
"""
import hashlib
import posixpath
from typing import Optional
from urllib.parse import urlparse


def is_valid_url(url: Optional[str]) -> bool:
    """URL absolue http(s) avec un hôte."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def resolve_url(url: Optional[str], base_url: str) -> str:
    """
    Résout une URL extraite contre l'URL de la page.

    - "" -> ""
    - absolue (schéma + hôte) -> inchangée
    - //host/x -> schéma de la page
    - /path -> schéma + hôte (+ port) de la page
    - relative -> répertoire du chemin de la page
    """
    if not url:
        return ""
    url = url.strip()
    if not url:
        return ""

    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return url

    base = urlparse(base_url)
    scheme = base.scheme or "https"

    if url.startswith("//"):
        return f"{scheme}:{url}"

    # netloc inclut déjà le port éventuel
    origin = f"{scheme}://{base.netloc}"

    if url.startswith("/"):
        return origin + url

    directory = posixpath.dirname(base.path) if base.path else ""
    if directory in (".", "/"):
        directory = ""
    return f"{origin}{directory}/{url}"


def host_of(url_or_host: str) -> str:
    """Hôte normalisé: minuscules, sans port ni préfixe www."""
    value = (url_or_host or "").strip().lower()
    if "://" in value:
        value = urlparse(value).netloc
    else:
        value = value.split("/", 1)[0]
    value = value.rsplit("@", 1)[-1].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def domain_of(url: str) -> str:
    """Hôte tel qu'affiché dans les résultats (netloc brut)."""
    return urlparse(url).netloc


def domain_key(url_or_host: str) -> str:
    """Clé de cache: md5 hex de l'hôte normalisé."""
    return hashlib.md5(host_of(url_or_host).encode("utf-8")).hexdigest()
