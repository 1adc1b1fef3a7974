"""
Identité navigateur pour l'acquisition statique: User-Agent, en-têtes
cohérents avec ce UA, et session cloudscraper configurée en conséquence.
"""
import random
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cloudscraper

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:139.0) Gecko/20100101 Firefox/139.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:139.0) Gecko/20100101 Firefox/139.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36 Edg/137.0.0.0",
]

# Chrome headless: doit suivre la version installée
BROWSER_USER_AGENT = USER_AGENTS[0]

DOCUMENT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

CHROMIUM_HINTS = {
    "Sec-Ch-Ua": '"Google Chrome";v="137", "Chromium";v="137", "Not/A)Brand";v="24"',
    "Sec-Ch-Ua-Mobile": "?0",
}


@dataclass(frozen=True)
class BrowserIdentity:
    user_agent: str

    @property
    def browser(self) -> str:
        if "Firefox" in self.user_agent:
            return "firefox"
        if "Chrome" in self.user_agent:
            return "chrome"
        return "safari"

    @property
    def platform(self) -> str:
        return "darwin" if "Macintosh" in self.user_agent else "windows"

    def headers(self, referer: Optional[str] = None) -> Dict[str, str]:
        headers = dict(DOCUMENT_HEADERS, **{"User-Agent": self.user_agent})
        # Client hints: Chromium uniquement
        if self.browser == "chrome":
            headers.update(CHROMIUM_HINTS)
            headers["Sec-Ch-Ua-Platform"] = '"macOS"' if self.platform == "darwin" else '"Windows"'
        if referer:
            headers["Referer"] = referer
            headers["Sec-Fetch-Site"] = "same-origin"
        return headers

    def cloudscraper_profile(self) -> Dict[str, object]:
        # cloudscraper ne connaît que chrome/firefox; la plateforme suit le UA
        browser = "firefox" if self.browser == "firefox" else "chrome"
        return {"browser": browser, "platform": self.platform, "mobile": False}


def pick_identity() -> BrowserIdentity:
    return BrowserIdentity(random.choice(USER_AGENTS))


def create_stealth_scraper(
    proxies: Optional[Dict[str, str]] = None,
    identity: Optional[BrowserIdentity] = None,
    referer: Optional[str] = None,
) -> Tuple[cloudscraper.CloudScraper, Dict[str, str]]:
    """
    Session cloudscraper (cookies conservés entre redirections) avec
    les en-têtes de l'identité et le proxy épinglé.

    Returns:
        (scraper, headers envoyés)
    """
    identity = identity or pick_identity()
    headers = identity.headers(referer)
    scraper = cloudscraper.create_scraper(browser=identity.cloudscraper_profile())
    scraper.headers.update(headers)
    if proxies:
        scraper.proxies.update(proxies)
    return scraper, headers
