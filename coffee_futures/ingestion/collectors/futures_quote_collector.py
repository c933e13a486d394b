"""Futures Quote Collector - active-contract OHLCV via network interception.

Renders the source's futures-prices page in a headless Chrome session and
captures the JSON body of the quote API call the page makes while loading.
The rendered DOM is ignored: the API response is the structured source.

Architecture:
    - **Selenium** drives Chrome with performance logging enabled, so that
      DevTools ``Network.*`` events are readable through ``get_log``.
    - A wait condition scans those events for a finished response whose URL
      matches ``QUOTE_API_PATTERN`` and fetches its body over CDP.
    - The payload is validated and mapped by
      :func:`coffee_futures.pipelines.price.validate.parse_quote_payload`.

Session lifecycle:
    One browser per ``collect()`` call, created inside
    :meth:`FuturesQuoteCollector.browser_session` and quit on every exit
    path. There is no retry here; a failed attempt raises ExtractionError.

Usage:
    >>> from coffee_futures.ingestion.collectors.futures_quote_collector import extract_snapshot
    >>> snapshot = extract_snapshot("KC")
    >>> snapshot.trade_date, snapshot.close
"""

import base64
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

import requests
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from coffee_futures.ingestion.collectors.base_collector import BaseCollector
from coffee_futures.pipelines.price.validate import QuoteSnapshot, parse_quote_payload
from coffee_futures.shared.config import INSTRUMENTS, Config, validate_instrument
from coffee_futures.shared.exceptions import ExtractionError

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class QuoteResponseWatcher:
    """WebDriverWait condition returning the first captured quote payload.

    Performance log entries are consumed on read, so the watcher keeps the
    request ids it has seen across polls. A request is readable once both
    its ``responseReceived`` (matching URL, HTTP 200) and ``loadingFinished``
    events have arrived.

    Returns ``(request_id, payload)`` so that an empty JSON body still ends
    the wait.
    """

    def __init__(self, url_pattern: str, logger) -> None:
        self.url_pattern = url_pattern
        self.logger = logger
        self.last_error: str | None = None
        self._candidates: list[str] = []
        self._finished: set[str] = set()
        self._rejected: set[str] = set()

    def __call__(self, driver: WebDriver) -> tuple[str, Any] | bool:
        for entry in driver.get_log("performance"):
            self._observe(entry)

        for request_id in self._candidates:
            if request_id in self._finished and request_id not in self._rejected:
                payload = self._read_body(driver, request_id)
                if payload is not None:
                    return request_id, payload[0]
        return False

    def _observe(self, entry: dict[str, Any]) -> None:
        try:
            message = json.loads(entry["message"])["message"]
        except (KeyError, TypeError, ValueError):
            return

        method = message.get("method")
        params = message.get("params") or {}
        request_id = params.get("requestId")
        if request_id is None:
            return

        if method == "Network.responseReceived":
            response = params.get("response") or {}
            url = response.get("url", "")
            if self.url_pattern not in url:
                return
            if response.get("status") != 200:
                self.last_error = f"quote API returned HTTP {response.get('status')}"
                self.logger.warning("Quote API response %s: HTTP %s", url, response.get("status"))
                return
            if request_id not in self._candidates:
                self.logger.debug("Matched quote API request %s: %s", request_id, url)
                self._candidates.append(request_id)
        elif method == "Network.loadingFinished":
            self._finished.add(request_id)
        elif method == "Network.loadingFailed":
            self._rejected.add(request_id)

    def _read_body(self, driver: WebDriver, request_id: str) -> tuple[Any] | None:
        try:
            result = driver.execute_cdp_cmd("Network.getResponseBody", {"requestId": request_id})
        except WebDriverException as exc:
            self.last_error = f"response body unavailable: {exc.msg or exc}"
            self.logger.warning("Could not read body of %s: %s", request_id, exc)
            self._rejected.add(request_id)
            return None

        body = result.get("body", "")
        try:
            if result.get("base64Encoded"):
                body = base64.b64decode(body).decode("utf-8")
            return (json.loads(body),)
        except ValueError as exc:
            self.last_error = f"quote API body is not JSON: {exc}"
            self.logger.warning("Body of %s is not JSON: %s", request_id, exc)
            self._rejected.add(request_id)
            return None


class FuturesQuoteCollector(BaseCollector):
    """Extracts the active contract's OHLCV snapshot for one instrument.

    Features:
        - Fresh headless Chrome session per call, always quit
        - Quote data read from the intercepted API response, not the DOM
        - Bounded wait (``timeout``) for the response
        - Strict payload validation; no partial snapshots

    Args:
        page_url: Page URL template with a ``{symbol}`` placeholder.
        api_pattern: Substring identifying the quote API request URL.
        timeout: Seconds to wait for the quote response.
        page_load_timeout: Selenium page-load timeout in seconds.
        headless: Run Chrome headless.
        chromedriver_path: Explicit chromedriver binary; resolved with
            webdriver-manager when not given.
        driver_factory: Callable returning a ready WebDriver (tests).
        log_file: Optional log file path.
    """

    SOURCE_NAME = "barchart"
    POLL_FREQUENCY = 0.5

    def __init__(
        self,
        page_url: str | None = None,
        api_pattern: str | None = None,
        timeout: float | None = None,
        page_load_timeout: int | None = None,
        headless: bool | None = None,
        chromedriver_path: str | None = None,
        driver_factory: Callable[[], WebDriver] | None = None,
        log_file: Path | None = None,
    ) -> None:
        super().__init__(
            log_file=log_file or Config.LOGS_DIR / "collectors" / "futures_quote_collector.log"
        )
        self.page_url = page_url or Config.QUOTE_PAGE_URL
        self.api_pattern = api_pattern or Config.QUOTE_API_PATTERN
        self.timeout = timeout if timeout is not None else Config.EXTRACTION_TIMEOUT
        self.page_load_timeout = page_load_timeout or Config.PAGE_LOAD_TIMEOUT
        self.headless = Config.BROWSER_HEADLESS if headless is None else headless
        self.chromedriver_path = chromedriver_path or Config.CHROMEDRIVER_PATH
        self._driver_factory = driver_factory or self._create_driver
        self._session = requests.Session()
        self._session.headers["User-Agent"] = USER_AGENT

    # ------------------------------------------------------------------
    # BaseCollector interface
    # ------------------------------------------------------------------

    def collect(self, instrument: str) -> QuoteSnapshot:
        """Extract the current snapshot for ``instrument``.

        Raises:
            ValueError: Unknown instrument.
            ExtractionError: Browser failure, timeout, or invalid payload.
        """
        instrument = validate_instrument(instrument)
        url = self.page_url_for(instrument)
        self.logger.info("Extracting %s quotes from %s", instrument, url)

        with self.browser_session() as driver:
            payload = self._capture_quote_payload(driver, url, instrument)

        snapshot = parse_quote_payload(payload, instrument)
        self.logger.info(
            "%s: active contract %s on %s close=%.4f volume=%.0f",
            instrument,
            snapshot.symbol,
            snapshot.trade_date,
            snapshot.close,
            snapshot.volume,
        )
        return snapshot

    def close(self) -> None:
        """Release the HTTP session."""
        self._session.close()

    def health_check(self) -> bool:
        """Check that the quote page answers (no browser needed)."""
        url = self.page_url_for(next(iter(INSTRUMENTS)))
        try:
            response = self._session.head(url, timeout=10, allow_redirects=True)
            return response.ok
        except requests.exceptions.RequestException as exc:
            self.logger.error("Quote source health check failed: %s", exc)
            return False

    def page_url_for(self, instrument: str) -> str:
        return self.page_url.format(symbol=INSTRUMENTS[instrument]["symbol"])

    # ------------------------------------------------------------------
    # Selenium session
    # ------------------------------------------------------------------

    @contextmanager
    def browser_session(self) -> Iterator[WebDriver]:
        """Yield a fresh WebDriver and quit it on every exit path."""
        try:
            driver = self._driver_factory()
        except Exception as exc:
            self.logger.error("Failed to initialize WebDriver: %s", exc)
            raise ExtractionError(f"Browser session could not start: {exc}") from exc

        try:
            yield driver
        finally:
            try:
                driver.quit()
                self.logger.debug("WebDriver closed")
            except WebDriverException as exc:
                self.logger.warning("Error closing WebDriver: %s", exc)

    def _create_driver(self) -> WebDriver:
        """Chrome with DevTools performance logging and the Network domain on."""
        options = Options()
        if self.headless:
            options.add_argument("--headless=new")

        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_argument("--disable-extensions")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-gpu")
        options.add_argument("--window-size=1920,1080")
        options.add_argument(f"--user-agent={USER_AGENT}")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)
        options.set_capability("goog:loggingPrefs", {"performance": "ALL"})

        driver_path = self.chromedriver_path or ChromeDriverManager().install()
        driver = webdriver.Chrome(service=Service(driver_path), options=options)

        try:
            driver.set_page_load_timeout(self.page_load_timeout)
            driver.execute_cdp_cmd("Network.enable", {})
            driver.execute_cdp_cmd(
                "Page.addScriptToEvaluateOnNewDocument",
                {
                    "source": "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
                },
            )
        except WebDriverException:
            driver.quit()
            raise

        self.logger.info("Chrome WebDriver initialized (headless=%s)", self.headless)
        return driver

    # ------------------------------------------------------------------
    # Interception
    # ------------------------------------------------------------------

    def _capture_quote_payload(self, driver: WebDriver, url: str, instrument: str) -> Any:
        watcher = QuoteResponseWatcher(self.api_pattern, self.logger)
        try:
            try:
                driver.get(url)
            except TimeoutException:
                # XHRs started before the load timeout can still complete.
                self.logger.warning(
                    "%s: page load exceeded %ss, stopping page and waiting for quote response",
                    instrument,
                    self.page_load_timeout,
                )
                driver.execute_script("window.stop();")

            _, payload = WebDriverWait(
                driver, self.timeout, poll_frequency=self.POLL_FREQUENCY
            ).until(watcher)
        except TimeoutException as exc:
            detail = f" (last error: {watcher.last_error})" if watcher.last_error else ""
            raise ExtractionError(
                f"No quote response matching {self.api_pattern!r} within {self.timeout}s{detail}",
                instrument=instrument,
            ) from exc
        except WebDriverException as exc:
            raise ExtractionError(
                f"Browser navigation failed: {exc.msg or exc}", instrument=instrument
            ) from exc

        return payload


def extract_snapshot(instrument: str, **collector_kwargs: Any) -> QuoteSnapshot:
    """Instrument symbol in, snapshot out; session handling stays inside."""
    collector = FuturesQuoteCollector(**collector_kwargs)
    try:
        return collector.collect(instrument)
    finally:
        collector.close()
