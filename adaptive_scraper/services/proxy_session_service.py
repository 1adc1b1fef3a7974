"""
Proxy Session Service - Une IP de sortie par opérateur et par login epoch.

L'IP n'est renouvelée que lorsque l'opérateur se reconnecte (nouvel epoch)
ou change de ville (clear_session). Pas de repli sur une IP partagée:
en cas d'échec upstream, l'appelant reçoit None.

Chaque assignation/libération est tracée dans un journal JSON-lines.
"""
import json
import random
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, Callable

import httpx

from adaptive_scraper.core.config import (
    PROXY_ENABLED,
    PROXY_PASSWORD,
    PROXY_HOST,
    PROXY_PORT,
    PROXY_DEFAULT_CITY,
    PROXY_LOG_PATH,
    IP_ECHO_URL,
    IP_ECHO_TIMEOUT,
    ProxyCredentials,
    build_upstream_username,
)
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.db.session import get_db_session
from adaptive_scraper.repositories.city_preference_repository import CityPreferenceRepository
from adaptive_scraper.repositories.proxy_session_repository import ProxySessionRepository

logger = get_logger(__name__)


def fetch_proxy_ip(credentials: ProxyCredentials, timeout: float = IP_ECHO_TIMEOUT) -> Optional[str]:
    """
    Appelle l'endpoint IP-echo à travers le proxy.

    Returns:
        L'IP de sortie, ou None si l'appel échoue
    """
    try:
        with httpx.Client(proxy=credentials.to_url(), timeout=timeout) as client:
            response = client.get(IP_ECHO_URL)
            response.raise_for_status()
            return response.json().get("ip")
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(
            f"IP echo through proxy failed: {e}",
            error_type=type(e).__name__,
            upstream_username=credentials.username,
        )
        return None


class ProxySessionService:
    """
    Gestionnaire des sessions proxy épinglées.

    Instancié une fois par process (get_session_service()).
    """

    def __init__(
        self,
        session_factory: Callable = get_db_session,
        ip_fetcher: Callable[[ProxyCredentials], Optional[str]] = fetch_proxy_ip,
        log_path: Path = PROXY_LOG_PATH,
        enabled: bool = PROXY_ENABLED,
        password: str = PROXY_PASSWORD,
        host: str = PROXY_HOST,
        port: int = PROXY_PORT,
        default_city: str = PROXY_DEFAULT_CITY,
    ):
        self._session_factory = session_factory
        self._ip_fetcher = ip_fetcher
        self._log_path = Path(log_path)
        self._enabled = enabled
        self._password = password
        self._host = host
        self._port = port
        self._default_city = default_city or None

        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._log_lock = threading.Lock()

    def _lock_for(self, operator_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(operator_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[operator_id] = lock
            return lock

    # =========================================================================
    # ASSIGNATION
    # =========================================================================

    def credentials_for(self, city_key: str, session_token: Optional[str] = None) -> ProxyCredentials:
        credentials = ProxyCredentials(
            username=build_upstream_username(city_key),
            password=self._password,
            host=self._host,
            port=self._port,
            location=city_key,
        )
        return credentials.with_session(session_token) if session_token else credentials

    def _resolve_city(self, db, operator_id: int) -> Optional[str]:
        """Ville sélectionnée, sinon la plus récemment utilisée, sinon le défaut."""
        operator = ProxySessionRepository(db).get_operator(operator_id)
        if operator and operator.selected_city:
            return operator.selected_city
        recent = CityPreferenceRepository(db).get_most_recent(operator_id)
        if recent:
            return recent.city_key
        return self._default_city

    def get_session_ip(self, operator_id: int) -> Optional[str]:
        """
        IP épinglée pour le login epoch courant de l'opérateur.

        Premier appel de l'epoch: nouvelle session upstream + vérification.
        Appels suivants: IP stockée, aucun appel réseau.
        """
        if not self._enabled:
            logger.info("Proxy disabled by configuration", operator_id=operator_id)
            return None

        with self._lock_for(operator_id):
            with self._session_factory() as db:
                repo = ProxySessionRepository(db)
                login_epoch = repo.get_login_epoch(operator_id)
                if login_epoch is None:
                    logger.warning("No active login epoch for operator", operator_id=operator_id)
                    return None

                existing = repo.get(operator_id, login_epoch)
                if existing:
                    logger.debug(
                        "Using pinned session proxy",
                        operator_id=operator_id,
                        proxy_ip=existing.assigned_ip,
                    )
                    return existing.assigned_ip

                city_key = self._resolve_city(db, operator_id)

            if not city_key:
                logger.warning("No proxy city for operator", operator_id=operator_id)
                return None

            token = f"{login_epoch}-{random.randint(1000, 9999)}"
            credentials = self.credentials_for(city_key, session_token=token)
            logger.info(
                "Requesting fresh session proxy",
                operator_id=operator_id,
                upstream_username=credentials.username,
            )

            proxy_ip = self._ip_fetcher(credentials)
            if not proxy_ip:
                logger.error(
                    "Failed to assign session proxy",
                    operator_id=operator_id,
                    city_key=city_key,
                    exc_info=False,
                )
                return None

            with self._session_factory() as db:
                stored = ProxySessionRepository(db).create(
                    operator_id=operator_id,
                    login_epoch=login_epoch,
                    assigned_ip=proxy_ip,
                    upstream_username=credentials.username,
                    city_key=city_key,
                )
                stored_ip = stored.assigned_ip

            # Un autre worker a assigné l'epoch pendant notre IP echo
            if stored_ip != proxy_ip:
                logger.info(
                    "Session proxy already assigned by another worker",
                    operator_id=operator_id,
                    proxy_ip=stored_ip,
                    discarded_ip=proxy_ip,
                )
                return stored_ip

            self._append_log("ASSIGN", operator_id, proxy_ip, login_epoch)
            logger.info("Assigned session proxy", operator_id=operator_id, proxy_ip=proxy_ip, city_key=city_key)
            return proxy_ip

    def clear_session(self, operator_id: int) -> bool:
        """Oublie la session courante; le prochain appel ré-assigne."""
        with self._lock_for(operator_id):
            with self._session_factory() as db:
                repo = ProxySessionRepository(db)
                current = repo.get_latest(operator_id)
                released = (current.assigned_ip, current.login_epoch) if current else None
                deleted = repo.delete_for_operator(operator_id)

            if released:
                self._append_log("RELEASE", operator_id, released[0], released[1])
                logger.info(
                    "Cleared session proxy",
                    operator_id=operator_id,
                    proxy_ip=released[0],
                    deleted=deleted,
                )
            return deleted > 0

    def force_refresh_session(self, operator_id: int) -> Optional[str]:
        self.clear_session(operator_id)
        new_ip = self.get_session_ip(operator_id)
        logger.info("Force refreshed session proxy", operator_id=operator_id, proxy_ip=new_ip)
        return new_ip

    # =========================================================================
    # LECTURE
    # =========================================================================

    def get_session_info(self, operator_id: int) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            repo = ProxySessionRepository(db)
            login_epoch = repo.get_login_epoch(operator_id)
            if login_epoch is None:
                return None
            current = repo.get(operator_id, login_epoch)
            return current.to_dict() if current else None

    def get_session_credentials(self, operator_id: int) -> Optional[ProxyCredentials]:
        if not self.get_session_ip(operator_id):
            return None
        info = self.get_session_info(operator_id)
        if not info:
            return None
        return ProxyCredentials(
            username=info["upstream_username"],
            password=self._password,
            host=self._host,
            port=self._port,
            location=info.get("city_key"),
        )

    def get_session_proxies(self, operator_id: int) -> Optional[Dict[str, str]]:
        """Dict requests/cloudscraper {"http": ..., "https": ...} ou None."""
        credentials = self.get_session_credentials(operator_id)
        return credentials.to_dict() if credentials else None

    def get_session_proxy_url(self, operator_id: int) -> Optional[str]:
        credentials = self.get_session_credentials(operator_id)
        return credentials.to_url() if credentials else None

    def test_session_proxy(self, operator_id: int) -> Dict[str, Any]:
        """
        Diagnostic: refait un appel IP-echo avec la session épinglée.
        Ne lève jamais.
        """
        info = self.get_session_info(operator_id)
        if not info:
            return {"success": False, "message": "No session proxy assigned"}

        credentials = ProxyCredentials(
            username=info["upstream_username"],
            password=self._password,
            host=self._host,
            port=self._port,
        )
        start = time.perf_counter()
        try:
            with httpx.Client(proxy=credentials.to_url(), timeout=IP_ECHO_TIMEOUT) as client:
                response = client.get(IP_ECHO_URL)
        except httpx.HTTPError as e:
            return {
                "success": False,
                "message": f"Proxy connection failed: {e}",
                "proxy_info": info,
            }

        if response.status_code != 200:
            return {
                "success": False,
                "message": f"Proxy returned HTTP {response.status_code}",
                "proxy_info": info,
            }

        try:
            current_ip = response.json().get("ip", "unknown")
        except ValueError:
            current_ip = "unknown"

        return {
            "success": True,
            "message": "Session proxy is working correctly",
            "proxy_info": info,
            "current_ip": current_ip,
            "response_time": round(time.perf_counter() - start, 3),
        }

    # =========================================================================
    # LOGIN EPOCH (appelé par la couche d'authentification)
    # =========================================================================

    def start_login_epoch(self, operator_id: int, epoch: Optional[int] = None) -> int:
        """Nouveau login: les sessions des epochs précédents sont détruites."""
        epoch = epoch if epoch is not None else int(time.time())
        self.clear_session(operator_id)
        with self._session_factory() as db:
            ProxySessionRepository(db).set_login_epoch(operator_id, epoch)
        logger.info("Login epoch started", operator_id=operator_id, login_epoch=epoch)
        return epoch

    def end_login_epoch(self, operator_id: int) -> None:
        self.clear_session(operator_id)
        with self._session_factory() as db:
            ProxySessionRepository(db).set_login_epoch(operator_id, None)
        logger.info("Login epoch ended", operator_id=operator_id)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def purge_stale_sessions(self, max_age_hours: int = 24) -> int:
        with self._session_factory() as db:
            count = ProxySessionRepository(db).delete_older_than(max_age_hours)
        if count:
            logger.info("Purged stale proxy sessions", deleted=count, max_age_hours=max_age_hours)
        return count

    def _append_log(self, action: str, operator_id: int, proxy_ip: str, login_epoch: Optional[int]) -> None:
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "action": action,
            "operator_id": operator_id,
            "proxy_ip": proxy_ip,
            "login_epoch": login_epoch,
        }
        try:
            with self._log_lock:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write proxy assignment log: {e}", operator_id=operator_id)


_session_service: Optional[ProxySessionService] = None


def get_session_service() -> ProxySessionService:
    global _session_service
    if _session_service is None:
        _session_service = ProxySessionService()
    return _session_service
