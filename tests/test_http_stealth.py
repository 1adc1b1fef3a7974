from adaptive_scraper.utils.http_stealth import BrowserIdentity, USER_AGENTS, create_stealth_scraper

CHROME_MAC = USER_AGENTS[2]
FIREFOX = USER_AGENTS[3]
SAFARI = USER_AGENTS[5]


def test_chromium_sends_client_hints():
    headers = BrowserIdentity(CHROME_MAC).headers()
    assert headers["User-Agent"] == CHROME_MAC
    assert headers["Sec-Ch-Ua-Platform"] == '"macOS"'
    assert headers["Sec-Fetch-Site"] == "none"


def test_firefox_and_safari_have_no_client_hints():
    for ua in (FIREFOX, SAFARI):
        assert "Sec-Ch-Ua" not in BrowserIdentity(ua).headers()


def test_referer_marks_same_origin():
    headers = BrowserIdentity(FIREFOX).headers(referer="https://dealer.example.com/")
    assert headers["Referer"] == "https://dealer.example.com/"
    assert headers["Sec-Fetch-Site"] == "same-origin"


def test_cloudscraper_profile():
    assert BrowserIdentity(FIREFOX).cloudscraper_profile()["browser"] == "firefox"
    # Safari (macOS uniquement): profil chrome, même plateforme que le UA
    assert BrowserIdentity(SAFARI).cloudscraper_profile() == {"browser": "chrome", "platform": "darwin", "mobile": False}
    assert BrowserIdentity(CHROME_MAC).cloudscraper_profile()["platform"] == "darwin"
    assert BrowserIdentity(USER_AGENTS[0]).cloudscraper_profile()["platform"] == "windows"


def test_scraper_carries_proxy_and_headers():
    proxies = {"http": "http://u:p@proxy.test:7777", "https": "http://u:p@proxy.test:7777"}
    scraper, headers = create_stealth_scraper(proxies=proxies, identity=BrowserIdentity(FIREFOX))

    assert scraper.proxies["https"] == proxies["https"]
    assert scraper.headers["User-Agent"] == FIREFOX
    assert headers["Accept-Language"] == "en-US,en;q=0.9"
