import json
from contextlib import contextmanager

import pytest
from selenium.common.exceptions import NoSuchElementException
from selenium.webdriver.common.by import By
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from adaptive_scraper.db.session import init_db
from adaptive_scraper.models import Operator, ProxyCity
from adaptive_scraper.services.selector_cache_service import FileSelectorCache


LISTING_HTML = """
<html><head><title>Inventory</title><script>var x = 1;</script></head>
<body>
  <nav><a href="/">Home</a></nav>
  <div class="results">
    <div class="unit-card">
      <h3 class="unit-name">2024 Big Tex 14LP Dump</h3>
      <img class="photo" src="/img/a.jpg">
      <span class="amount">$1,000</span>
      <a class="more" href="/inventory/a">Details</a>
      <span class="sku">A-1</span>
    </div>
    <div class="unit-card">
      <h3 class="unit-name">2023 PJ Trailers Car Hauler</h3>
      <img class="photo" src="//cdn.example.com/b.jpg">
      <span class="amount">$2,500</span>
      <a class="more" href="https://dealer.example.com/inventory/b">Details</a>
      <span class="sku">B-2</span>
    </div>
    <div class="unit-card">
      <h3 class="unit-name">Used Lamar Flatbed</h3>
      <img class="photo" src="c.jpg">
      <span class="amount">Call for price</span>
      <a class="more" href="#" data-url="/inventory/c">Details</a>
      <span class="sku">C-3</span>
    </div>
  </div>
  <footer>Dealer, Dallas TX</footer>
</body></html>
"""

LISTING_URL = "https://dealer.example.com/trailers/index.html"

LISTING_SELECTORS = {
    "container": ".unit-card",
    "title": ".unit-name",
    "image": "img.photo",
    "price": ".amount",
    "link": "a.more",
    "description": None,
    "stock": ".sku",
}


@pytest.fixture
def listing_html():
    return LISTING_HTML


@pytest.fixture
def listing_url():
    return LISTING_URL


# =============================================================================
# BASE DE DONNÉES
# =============================================================================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Même contrat que get_db_session: commit, rollback, close."""
    maker = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def factory():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


@pytest.fixture
def operator(session_factory):
    with session_factory() as db:
        op = Operator(username="alice", login_epoch=1700000000)
        db.add(op)
        db.flush()
        operator_id = op.id
    return operator_id


@pytest.fixture
def cities(session_factory):
    rows = [
        ("new_york", "New York"),
        ("dallas", "Dallas"),
        ("st_louis", "St. Louis"),
        ("austin", "Austin"),
        ("chicago", "Chicago"),
    ]
    with session_factory() as db:
        for key, name in rows:
            db.add(ProxyCity(city_key=key, display_name=name, country_code="US"))
    return [key for key, _ in rows]


# =============================================================================
# FAUX SERVICES
# =============================================================================

class FakeLLM:
    """Renvoie les réponses dans l'ordre; une Exception dans la liste est levée."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.prompts = []

    def complete(self, prompt, system=None, **kwargs):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("Unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response if isinstance(response, str) else json.dumps(response)

    def complete_json(self, prompt, system=None, **kwargs):
        from adaptive_scraper.services.llm_client import parse_json_response

        return parse_json_response(self.complete(prompt, system=system, **kwargs))


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def selector_cache(tmp_path):
    return FileSelectorCache(tmp_path / "cache")


class FakeElement:
    text = '{"ip": "203.0.113.7"}'

    def is_displayed(self):
        return True


class FakeNetwork:
    def __init__(self):
        self.auth = []

    def add_auth_handler(self, username, password):
        self.auth.append((username, password))


class FakeDriver:
    """WebDriver minimal: hauteurs de document scriptées."""

    def __init__(self, heights=None, page_source="<html><body></body></html>", products=0):
        self.heights = list(heights or [1000])
        self.page_source = page_source
        self.current_url = None
        self.products = products
        self.visited = []
        self.scrolls = []
        self.quit_called = False
        self.network = FakeNetwork()

    def get(self, url):
        self.visited.append(url)
        self.current_url = url

    def execute_script(self, script, *args):
        if script.startswith("return"):
            if len(self.heights) > 1:
                return self.heights.pop(0)
            return self.heights[0]
        self.scrolls.append(args[0] if args else None)
        return None

    def find_element(self, by, value):
        if by == By.TAG_NAME and value == "body":
            return FakeElement()
        raise NoSuchElementException(f"no element {value}")

    def find_elements(self, by, value):
        if value == ".product":
            return [FakeElement()] * self.products
        return []

    def quit(self):
        self.quit_called = True


class FakeChromeDriverService:
    def __init__(self):
        self.ensured = 0

    def ensure_running(self):
        self.ensured += 1


@pytest.fixture
def fake_driver_cls():
    return FakeDriver


@pytest.fixture
def fake_service():
    return FakeChromeDriverService()
