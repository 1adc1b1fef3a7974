"""
Dynamic Fetcher - Chargement de pages rendues en JavaScript.

Charge l'URL dans une BrowserSession, attend le <body>, puis scrolle
jusqu'à stabilisation de la hauteur du document (lazy-loading, scroll infini).
"""
import threading
import time
from typing import Optional, Callable, List

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from adaptive_scraper.core.config import ProxyCredentials
from adaptive_scraper.core.exceptions import AcquisitionCancelled, AcquisitionError
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.normalizers.records import FetchResult
from adaptive_scraper.services.browser_session import BrowserSession

logger = get_logger(__name__)

SCROLL_THRESHOLDS = [0.75, 0.8, 0.9, 1.0]

LOADING_SELECTORS = [
    ".loading",
    ".spinner",
    ".loader",
    '[class*="loading"]',
    '[class*="spinner"]',
    '[class*="loader"]',
    '[data-testid*="loading"]',
    ".fa-spinner",
    ".fa-circle-o-notch",
]

PRODUCT_SELECTORS = [
    ".product",
    ".item",
    ".listing",
    ".card",
    '[class*="product"]',
    '[class*="item"]',
    '[class*="listing"]',
    '[class*="trailer"]',
    "article",
]

HEIGHT_SCRIPT = "return Math.max(document.body.scrollHeight, document.documentElement.scrollHeight);"
SCROLL_SCRIPT = "window.scrollTo(0, arguments[0]);"
PAGE_READY_TIMEOUT = 10
SETTLE_DELAY = 3


class ScrollConvergence:
    """
    Scrolle jusqu'à ce que la hauteur du document ne bouge plus.

    Deux mesures consécutives identiques arrêtent la boucle; sinon on
    s'arrête à max_attempts.
    """

    def __init__(
        self,
        driver,
        max_attempts: int = 4,
        stable_required: int = 2,
        wait_timeout: float = 10,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.driver = driver
        self.max_attempts = max_attempts
        self.stable_required = stable_required
        self.wait_timeout = wait_timeout
        self.sleep = sleep
        self.cancel_event = cancel_event

    def document_height(self) -> int:
        return int(self.driver.execute_script(HEIGHT_SCRIPT) or 0)

    def wait_for_loading_indicators(self) -> None:
        for selector in LOADING_SELECTORS:
            try:
                WebDriverWait(self.driver, self.wait_timeout).until(
                    EC.invisibility_of_element_located((By.CSS_SELECTOR, selector))
                )
            except TimeoutException:
                logger.debug("Loading indicator still visible", selector=selector)

    def run(self) -> int:
        """Retourne le nombre de tentatives effectuées."""
        height = self.document_height()
        stable = 0
        attempts = 0

        while attempts < self.max_attempts:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise AcquisitionCancelled("Scroll cancelled", source="dynamic_fetcher")

            attempts += 1
            for threshold in SCROLL_THRESHOLDS:
                self.driver.execute_script(SCROLL_SCRIPT, int(height * threshold))
                self.sleep(1)

            self.sleep(2)
            self.wait_for_loading_indicators()

            new_height = self.document_height()
            if new_height == height:
                stable += 1
            else:
                stable = 0
            logger.debug(
                "Scroll attempt",
                attempt=attempts,
                height=new_height,
                previous_height=height,
                stable=stable,
            )
            height = new_height

            if stable >= self.stable_required:
                break

        self.driver.execute_script(SCROLL_SCRIPT, height)
        self.sleep(2)
        return attempts


def count_visible_products(driver, selectors: List[str] = PRODUCT_SELECTORS) -> int:
    """Nombre max d'éléments sur l'ensemble des sélecteurs produits usuels."""
    best = 0
    for selector in selectors:
        try:
            best = max(best, len(driver.find_elements(By.CSS_SELECTOR, selector)))
        except WebDriverException:
            continue
    return best


class DynamicPageLoader(BrowserSession):
    """BrowserSession qui sait charger et faire défiler une page."""

    def __init__(self, *args, max_scroll_attempts: int = 4, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_scroll_attempts = max_scroll_attempts

    def fetch(self, url: str, enable_scrolling: bool = True) -> FetchResult:
        if self.driver is None:
            raise AcquisitionError("Browser session not started", source="dynamic_fetcher", url=url)

        start = time.perf_counter()
        try:
            self.driver.get(url)
        except WebDriverException as e:
            raise AcquisitionError(f"Navigation failed: {e.msg}", source="dynamic_fetcher", url=url) from e

        try:
            WebDriverWait(self.driver, PAGE_READY_TIMEOUT).until(
                EC.presence_of_element_located((By.TAG_NAME, "body"))
            )
        except TimeoutException:
            logger.warning("Body not present after timeout", url=url)
        except WebDriverException as e:
            raise AcquisitionError(f"Page not ready: {e.msg}", source="dynamic_fetcher", url=url) from e

        self.sleep(SETTLE_DELAY)
        self.check_cancelled()

        scroll_attempts = 0
        try:
            if enable_scrolling:
                scroll_attempts = ScrollConvergence(
                    self.driver,
                    max_attempts=self.max_scroll_attempts,
                    sleep=self.sleep,
                    cancel_event=self.cancel_event,
                ).run()

            products = count_visible_products(self.driver)
            html = self.driver.page_source
            final_url = self.driver.current_url or url
        except WebDriverException as e:
            # Onglet planté ou session perdue en cours de page
            raise AcquisitionError(f"Browser failed after navigation: {e.msg}", source="dynamic_fetcher", url=url) from e
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Dynamic fetch complete",
            url=url,
            duration_ms=duration_ms,
            html_length=len(html),
            scroll_attempts=scroll_attempts,
            products_detected=products,
        )
        return FetchResult(
            html=html,
            status_code=200,
            final_url=final_url,
            duration_ms=duration_ms,
            method="dynamic",
            products_detected=products,
            scroll_attempts=scroll_attempts,
        )


def fetch_dynamic(
    url: str,
    proxy_credentials: Optional[ProxyCredentials] = None,
    enable_scrolling: bool = True,
    cancel_event: Optional[threading.Event] = None,
    **session_kwargs,
) -> FetchResult:
    """Ouvre une session, charge la page, ferme la session (toujours)."""
    with DynamicPageLoader(proxy_credentials=proxy_credentials, cancel_event=cancel_event, **session_kwargs) as loader:
        return loader.fetch(url, enable_scrolling=enable_scrolling)
