from adaptive_scraper.models.operator import Operator, Base
from adaptive_scraper.models.proxy_session import ProxySession
from adaptive_scraper.models.proxy_city import ProxyCity, CityProxyPreference

__all__ = [
    'Operator', 'ProxySession', 'ProxyCity', 'CityProxyPreference', 'Base',
]
