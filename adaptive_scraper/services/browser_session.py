"""
Browser Session - Chrome headless piloté via ChromeDriver.

- ChromeDriverService: vérifie/démarre le service d'automatisation
- BrowserSession: context manager propriétaire d'un driver et d'un profil
  temporaire; le teardown (quit + suppression du profil) est garanti
- cleanup_orphaned_profiles: balayage des profils laissés par un crash
"""
import hashlib
import os
import re
import shutil
import subprocess
import threading
import time
import uuid
from pathlib import Path
from typing import Optional, Callable

import httpx
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By

from adaptive_scraper.core.config import (
    CHROMEDRIVER_PATH,
    CHROMEDRIVER_URL,
    CHROME_BIN,
    BROWSER_PROFILE_ROOT,
    BROWSER_PROFILE_MAX_AGE,
    IP_ECHO_URL,
    ProxyCredentials,
)
from adaptive_scraper.core.exceptions import AutomationServiceError, AcquisitionCancelled
from adaptive_scraper.core.logging import get_logger
from adaptive_scraper.utils.http_stealth import BROWSER_USER_AGENT
from adaptive_scraper.utils.retry import with_retry

logger = get_logger(__name__)

PROFILE_PREFIX = "chrome_session_"
IP_RE = re.compile(r'"ip"\s*:\s*"([^"]+)"')


def cleanup_orphaned_profiles(profile_root: Path = BROWSER_PROFILE_ROOT, max_age_seconds: int = BROWSER_PROFILE_MAX_AGE) -> int:
    """
    Supprime les répertoires chrome_session_* plus vieux que max_age_seconds.

    Returns:
        Nombre de répertoires supprimés
    """
    root = Path(profile_root)
    if not root.is_dir():
        return 0

    now = time.time()
    removed = 0
    for path in root.glob(f"{PROFILE_PREFIX}*"):
        if not path.is_dir():
            continue
        try:
            if now - path.stat().st_mtime <= max_age_seconds:
                continue
            shutil.rmtree(path)
            removed += 1
        except OSError as e:
            logger.warning(f"Failed to remove orphaned profile: {e}", profile_dir=str(path))

    if removed:
        logger.info("Removed orphaned browser profiles", removed=removed, profile_root=str(root))
    return removed


def new_profile_dir(profile_root: Path = BROWSER_PROFILE_ROOT) -> Path:
    """Répertoire de profil unique (collisions impossibles entre process/threads)."""
    seed = f"{time.time()}-{time.monotonic()}-{os.getpid()}-{uuid.uuid4()}-{os.urandom(8).hex()}"
    path = Path(profile_root) / f"{PROFILE_PREFIX}{hashlib.md5(seed.encode()).hexdigest()}"
    path.mkdir(parents=True, exist_ok=False)
    return path


# =============================================================================
# SERVICE CHROMEDRIVER
# =============================================================================

class ChromeDriverService:
    """Garantit qu'un ChromeDriver répond sur CHROMEDRIVER_URL."""

    def __init__(
        self,
        url: str = CHROMEDRIVER_URL,
        binary_path: str = CHROMEDRIVER_PATH,
        startup_timeout: float = 10.0,
        poll_interval: float = 0.5,
        popen: Callable = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url.rstrip("/")
        self.binary_path = binary_path
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self._popen = popen
        self._sleep = sleep
        self._process = None

    def is_ready(self) -> bool:
        try:
            response = httpx.get(f"{self.url}/status", timeout=2.0)
            return bool(response.json().get("value", {}).get("ready"))
        except (httpx.HTTPError, ValueError):
            return False

    def ensure_running(self) -> None:
        if self.is_ready():
            return

        port = httpx.URL(self.url).port or 9515
        logger.info("Starting chromedriver", binary=self.binary_path, port=port)
        try:
            self._process = self._popen(
                [self.binary_path, f"--port={port}", "--allowed-ips=127.0.0.1"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise AutomationServiceError(f"Cannot launch chromedriver: {e}", source="chromedriver") from e

        waited = 0.0
        while waited < self.startup_timeout:
            self._sleep(self.poll_interval)
            waited += self.poll_interval
            if self.is_ready():
                logger.info("Chromedriver ready", waited_s=waited)
                return

        raise AutomationServiceError(
            f"Chromedriver not ready after {self.startup_timeout}s",
            source="chromedriver",
        )


def remote_driver_factory(options: Options) -> webdriver.Remote:
    return webdriver.Remote(command_executor=CHROMEDRIVER_URL, options=options)


# =============================================================================
# SESSION NAVIGATEUR
# =============================================================================

class BrowserSession:
    """
    Session Chrome exclusive à une extraction.

    Usage:
        with BrowserSession(proxy_credentials=creds) as session:
            session.driver.get(url)
    """

    def __init__(
        self,
        proxy_credentials: Optional[ProxyCredentials] = None,
        profile_root: Path = BROWSER_PROFILE_ROOT,
        driver_factory: Callable[[Options], object] = remote_driver_factory,
        service: Optional[ChromeDriverService] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
        connect_attempts: int = 3,
        connect_delay: float = 2.0,
    ):
        self.proxy_credentials = proxy_credentials
        self.profile_root = Path(profile_root)
        self.driver_factory = driver_factory
        self.service = service or ChromeDriverService()
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.connect_attempts = connect_attempts
        self.connect_delay = connect_delay

        self.driver = None
        self.profile_dir: Optional[Path] = None

    def __enter__(self) -> "BrowserSession":
        try:
            self.start()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        cleanup_orphaned_profiles(self.profile_root)
        self.service.ensure_running()
        self.profile_dir = new_profile_dir(self.profile_root)
        self.driver = self._start_driver(self._build_options())
        if self.proxy_credentials:
            # Première navigation: déclenche l'auth proxy et journalise l'IP de sortie
            logger.info(
                "Browser proxy IP",
                proxy_ip=self.verify_proxy_ip(),
                location=self.proxy_credentials.location,
            )

    def _build_options(self) -> Options:
        options = Options()
        options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-gpu")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_argument("--window-size=1920,1080")
        options.add_argument(f"--user-agent={BROWSER_USER_AGENT}")
        options.add_argument(f"--user-data-dir={self.profile_dir}")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)
        if CHROME_BIN:
            options.binary_location = CHROME_BIN

        if self.proxy_credentials:
            # Le proxy est porté par le process Chrome; l'auth passe par BiDi
            options.add_argument(f"--proxy-server=http://{self.proxy_credentials.endpoint}")
            options.enable_bidi = True
        return options

    def _start_driver(self, options: Options):
        """Connexion au ChromeDriver (3 tentatives, délai fixe)."""
        try:
            driver = with_retry(
                lambda: self.driver_factory(options),
                retries=self.connect_attempts - 1,
                base_delay=self.connect_delay,
                backoff=False,
                retry_on=(WebDriverException,),
                source="browser_session",
                sleep=self.sleep,
            )
        except WebDriverException as e:
            raise AutomationServiceError(
                f"Cannot create browser session after {self.connect_attempts} attempts: {e.msg}",
                source="browser_session",
            ) from e

        if self.proxy_credentials:
            try:
                driver.network.add_auth_handler(
                    self.proxy_credentials.username,
                    self.proxy_credentials.password,
                )
            except WebDriverException as e:
                driver.quit()
                raise AutomationServiceError(f"Proxy auth setup failed: {e.msg}", source="browser_session") from e

        logger.info(
            "Browser session started",
            profile_dir=str(self.profile_dir),
            proxied=bool(self.proxy_credentials),
        )
        return driver

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise AcquisitionCancelled("Browser acquisition cancelled", source="browser_session")

    def verify_proxy_ip(self) -> Optional[str]:
        """IP vue par l'endpoint IP-echo depuis le navigateur. None si échec."""
        if self.driver is None:
            return None
        try:
            self.driver.get(IP_ECHO_URL)
            try:
                text = self.driver.find_element(By.TAG_NAME, "body").text
            except WebDriverException:
                text = self.driver.page_source
        except WebDriverException as e:
            logger.warning(f"Browser IP verification failed: {e.msg}")
            return None

        match = IP_RE.search(text or "")
        return match.group(1) if match else None

    def close(self) -> None:
        """Teardown: quit du driver puis suppression du profil. Jamais fatal."""
        if self.driver is not None:
            try:
                self.driver.quit()
            except WebDriverException as e:
                logger.warning(f"Driver quit failed: {e.msg}")
            finally:
                self.driver = None

        if self.profile_dir is not None:
            try:
                shutil.rmtree(self.profile_dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Profile cleanup failed: {e}", profile_dir=str(self.profile_dir))
            finally:
                self.profile_dir = None
