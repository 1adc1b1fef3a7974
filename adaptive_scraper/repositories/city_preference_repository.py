from datetime import datetime
from typing import Optional, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from adaptive_scraper.models.operator import Operator
from adaptive_scraper.models.proxy_city import ProxyCity, CityProxyPreference


class CityPreferenceRepository:
    """
    Repository du catalogue de villes et des préférences opérateur.
    """

    def __init__(self, session: Session):
        self.session = session

    # Catalogue

    def get_city(self, city_key: str) -> Optional[ProxyCity]:
        return self.session.query(ProxyCity).filter(ProxyCity.city_key == city_key).first()

    def search_cities(self, search: str = "", country_code: str = "US") -> List[ProxyCity]:
        query = self.session.query(ProxyCity).filter(ProxyCity.country_code == country_code)
        if search:
            key_term = search.strip().lower().replace(" ", "_")
            name_term = search.strip()
            query = query.filter(or_(
                ProxyCity.city_key.like(f"%{key_term}%"),
                ProxyCity.display_name.ilike(f"%{name_term}%"),
            ))
        return query.all()

    def add_city(self, city_key: str, display_name: str, country_code: str = "US") -> ProxyCity:
        city = self.get_city(city_key)
        if city is None:
            city = ProxyCity(city_key=city_key, display_name=display_name, country_code=country_code)
            self.session.add(city)
            self.session.flush()
        return city

    # Préférences

    def get_preference(self, operator_id: int, city_key: str) -> Optional[CityProxyPreference]:
        return self.session.query(CityProxyPreference).filter(
            CityProxyPreference.operator_id == operator_id,
            CityProxyPreference.city_key == city_key,
        ).first()

    def upsert_preference(self, operator_id: int, city_key: str, is_favorite: bool = False) -> CityProxyPreference:
        """
        Insert ou update une préférence.

        - usage_count incrémenté
        - last_used = maintenant
        - is_favorite écrasé
        """
        now = datetime.utcnow()
        pref = self.get_preference(operator_id, city_key)
        if pref:
            pref.usage_count += 1
            pref.last_used = now
            pref.is_favorite = is_favorite
        else:
            pref = CityProxyPreference(
                operator_id=operator_id,
                city_key=city_key,
                is_favorite=is_favorite,
                usage_count=1,
                last_used=now,
            )
            self.session.add(pref)
        self.session.flush()
        return pref

    def get_most_recent(self, operator_id: int) -> Optional[CityProxyPreference]:
        return self.session.query(CityProxyPreference).filter(
            CityProxyPreference.operator_id == operator_id,
        ).order_by(
            CityProxyPreference.last_used.desc(),
            CityProxyPreference.is_favorite.desc(),
        ).first()

    def get_favorites(self, operator_id: int, limit: int = 3) -> List[CityProxyPreference]:
        return self.session.query(CityProxyPreference).filter(
            CityProxyPreference.operator_id == operator_id,
            CityProxyPreference.is_favorite.is_(True),
        ).order_by(
            CityProxyPreference.usage_count.desc(),
            CityProxyPreference.last_used.desc(),
        ).limit(limit).all()

    def get_recent_non_favorites(self, operator_id: int, limit: int = 2) -> List[CityProxyPreference]:
        return self.session.query(CityProxyPreference).filter(
            CityProxyPreference.operator_id == operator_id,
            CityProxyPreference.is_favorite.is_(False),
        ).order_by(CityProxyPreference.last_used.desc()).limit(limit).all()

    def set_selected_city(self, operator_id: int, city_key: Optional[str]) -> bool:
        operator = self.session.get(Operator, operator_id)
        if operator is None:
            return False
        operator.selected_city = city_key
        self.session.flush()
        return True
