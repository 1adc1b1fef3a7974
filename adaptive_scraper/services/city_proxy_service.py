"""
City Proxy Service - Choix de la ville de sortie du proxy par opérateur.

Les préférences servent uniquement au classement des suggestions;
changer de ville invalide la session proxy épinglée.
"""
from typing import Optional, List, Dict, Any, Callable

from adaptive_scraper.core.config import PROXY_PASSWORD, PROXY_HOST, PROXY_PORT, ProxyCredentials, build_upstream_username
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.db.session import get_db_session
from adaptive_scraper.repositories.city_preference_repository import CityPreferenceRepository
from adaptive_scraper.services.proxy_session_service import ProxySessionService, get_session_service

logger = get_logger(__name__)

POPULAR_CITIES = {
    "new_york": "New York",
    "los_angeles": "Los Angeles",
    "chicago": "Chicago",
    "houston": "Houston",
    "miami": "Miami",
}

SPECIAL_DISPLAY_NAMES = {
    "St Louis": "St. Louis",
    "St Paul": "St. Paul",
}


def format_city_display_name(city_key: str) -> str:
    """'st_louis' -> 'St. Louis'"""
    display = " ".join(word.capitalize() for word in city_key.replace("_", " ").split())
    return SPECIAL_DISPLAY_NAMES.get(display, display)


def get_city_proxy_config(city_key: str) -> ProxyCredentials:
    """Identifiants upstream routés sur la ville."""
    return ProxyCredentials(
        username=build_upstream_username(city_key),
        password=PROXY_PASSWORD,
        host=PROXY_HOST,
        port=PROXY_PORT,
        location=city_key,
    )


class CityProxyService:

    def __init__(
        self,
        session_factory: Callable = get_db_session,
        session_service: Optional[ProxySessionService] = None,
    ):
        self._session_factory = session_factory
        self._session_service = session_service

    @property
    def session_service(self) -> ProxySessionService:
        if self._session_service is None:
            self._session_service = get_session_service()
        return self._session_service

    def get_available_cities(self, search: str = "", limit: int = 50) -> List[Dict[str, Any]]:
        """Villes US, populaires d'abord puis ordre alphabétique. limit <= 0 = illimité."""
        with self._session_factory() as db:
            cities = CityPreferenceRepository(db).search_cities(search)
            rows = [
                {
                    "city_key": c.city_key,
                    "display_name": c.display_name,
                    "country_code": c.country_code,
                }
                for c in cities
            ]

        rows.sort(key=lambda r: (0 if r["city_key"] in POPULAR_CITIES else 1, r["display_name"]))
        if limit > 0:
            rows = rows[:limit]
        return rows

    def validate_city(self, city_key: str) -> bool:
        if not city_key:
            return False
        with self._session_factory() as db:
            return CityPreferenceRepository(db).get_city(city_key) is not None

    def set_preferred_city(self, operator_id: int, city_key: str, is_favorite: bool = False) -> bool:
        if not self.validate_city(city_key):
            logger.warning("Invalid proxy city", operator_id=operator_id, city_key=city_key)
            return False

        with self._session_factory() as db:
            repo = CityPreferenceRepository(db)
            repo.upsert_preference(operator_id, city_key, is_favorite=is_favorite)
            repo.set_selected_city(operator_id, city_key)

        # Nouvelle ville = nouvelle IP
        self.session_service.clear_session(operator_id)
        logger.info("Proxy city selected", operator_id=operator_id, city_key=city_key, is_favorite=is_favorite)
        return True

    def get_preferred_city(self, operator_id: int) -> Optional[str]:
        with self._session_factory() as db:
            pref = CityPreferenceRepository(db).get_most_recent(operator_id)
            return pref.city_key if pref else None

    def clear_selected_city(self, operator_id: int) -> None:
        with self._session_factory() as db:
            CityPreferenceRepository(db).set_selected_city(operator_id, None)
        logger.info("Cleared proxy city selection", operator_id=operator_id)

    def get_smart_suggestions(self, operator_id: int) -> List[Dict[str, Any]]:
        """
        Favoris (3 max), puis récents non favoris (2 max).
        Moins de 3 suggestions -> complété avec les villes populaires jusqu'à 5.
        """
        suggestions: List[Dict[str, Any]] = []

        with self._session_factory() as db:
            repo = CityPreferenceRepository(db)

            def display(city_key: str) -> str:
                city = repo.get_city(city_key)
                return city.display_name if city else format_city_display_name(city_key)

            for pref in repo.get_favorites(operator_id, limit=3):
                suggestions.append({
                    "city_key": pref.city_key,
                    "display_name": display(pref.city_key),
                    "reason": "Favorite",
                    "usage_count": pref.usage_count,
                    "type": "favorite",
                })

            for pref in repo.get_recent_non_favorites(operator_id, limit=2):
                suggestions.append({
                    "city_key": pref.city_key,
                    "display_name": display(pref.city_key),
                    "reason": "Recently Used",
                    "usage_count": pref.usage_count,
                    "type": "recent",
                })

        if len(suggestions) < 3:
            existing = {s["city_key"] for s in suggestions}
            for city_key, display_name in POPULAR_CITIES.items():
                if len(suggestions) >= 5:
                    break
                if city_key in existing:
                    continue
                suggestions.append({
                    "city_key": city_key,
                    "display_name": display_name,
                    "reason": "Popular Choice",
                    "usage_count": 0,
                    "type": "popular",
                })

        return suggestions


_city_service: Optional[CityProxyService] = None


def get_city_service() -> CityProxyService:
    global _city_service
    if _city_service is None:
        _city_service = CityProxyService()
    return _city_service
