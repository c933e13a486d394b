"""Tests for the futures quote collector (network interception, mocked driver)."""

import base64
import json
from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests
from selenium.common.exceptions import TimeoutException, WebDriverException

from coffee_futures.ingestion.collectors.futures_quote_collector import (
    FuturesQuoteCollector,
    QuoteResponseWatcher,
    extract_snapshot,
)
from coffee_futures.shared.exceptions import ExtractionError

API_URL = "https://www.barchart.com/proxies/core-api/v1/quotes/get?list=futures.contractInRoot&root=RM"
OTHER_URL = "https://www.barchart.com/proxies/core-api/v1/user/preferences"


def _event(method: str, **params) -> dict:
    return {
        "level": "INFO",
        "timestamp": 0,
        "message": json.dumps({"message": {"method": method, "params": params}}),
    }


def _response(request_id: str, url: str = API_URL, status: int = 200) -> list[dict]:
    return [
        _event("Network.responseReceived", requestId=request_id, response={"url": url, "status": status}),
        _event("Network.loadingFinished", requestId=request_id),
    ]


def _body(payload, encode: bool = False) -> dict:
    text = json.dumps(payload)
    if encode:
        return {"body": base64.b64encode(text.encode("utf-8")).decode("ascii"), "base64Encoded": True}
    return {"body": text, "base64Encoded": False}


class FakeDriver:
    """Performance log served in batches, one batch per ``get_log`` call."""

    def __init__(self, log_batches=None, bodies=None):
        self.log_batches = list(log_batches or [])
        self.bodies = bodies or {}
        self.get = Mock()
        self.quit = Mock()
        self.execute_script = Mock()
        self.body_requests: list[str] = []

    def get_log(self, log_type):
        assert log_type == "performance"
        return self.log_batches.pop(0) if self.log_batches else []

    def execute_cdp_cmd(self, cmd, args):
        assert cmd == "Network.getResponseBody"
        self.body_requests.append(args["requestId"])
        body = self.bodies[args["requestId"]]
        if isinstance(body, Exception):
            raise body
        return body


def _collector(tmp_path, driver=None, timeout: float = 0.2, **kwargs) -> FuturesQuoteCollector:
    collector = FuturesQuoteCollector(
        timeout=timeout,
        driver_factory=kwargs.pop("driver_factory", lambda: driver),
        log_file=tmp_path / "futures_quote_collector.log",
        **kwargs,
    )
    collector.POLL_FREQUENCY = 0.01
    return collector


class TestInit:
    def test_defaults_from_config(self, tmp_path):
        collector = FuturesQuoteCollector(log_file=tmp_path / "q.log")
        assert collector.SOURCE_NAME == "barchart"
        assert collector.timeout == 45
        assert collector.api_pattern == "/proxies/core-api/v1/quotes/get"

    def test_page_url_uses_instrument_symbol(self, tmp_path):
        collector = FuturesQuoteCollector(
            page_url="https://example.test/{symbol}/prices", log_file=tmp_path / "q.log"
        )
        assert collector.page_url_for("KC") == "https://example.test/KC/prices"


class TestCollect:
    """End-to-end extraction with a scripted driver."""

    def test_returns_active_contract_snapshot(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload)})

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.instrument == "RM"
        assert snapshot.symbol == "RMF26"
        assert snapshot.trade_date == date(2025, 10, 17)
        assert snapshot.close == 4550.0
        assert snapshot.volume == 12873.0
        driver.get.assert_called_once()
        assert "RM" in driver.get.call_args[0][0]
        driver.quit.assert_called_once()

    def test_base64_body_is_decoded(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload, encode=True)})

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.symbol == "RMF26"

    def test_unrelated_requests_are_ignored(self, tmp_path, quote_payload):
        driver = FakeDriver(
            [_response("0.9", url=OTHER_URL) + _response("1.1")],
            {"1.1": _body(quote_payload)},
        )

        _collector(tmp_path, driver).collect("RM")

        assert driver.body_requests == ["1.1"]

    def test_response_arriving_on_later_poll(self, tmp_path, quote_payload):
        received, finished = _response("1.1")
        driver = FakeDriver([[], [received], [], [finished]], {"1.1": _body(quote_payload)})

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.symbol == "RMF26"

    def test_instrument_is_normalized(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload)})

        snapshot = _collector(tmp_path, driver).collect(" rm ")

        assert snapshot.instrument == "RM"

    def test_unknown_instrument_raises_value_error(self, tmp_path):
        factory = Mock()
        collector = _collector(tmp_path, driver_factory=factory)

        with pytest.raises(ValueError, match="Unsupported instrument"):
            collector.collect("XX")
        factory.assert_not_called()


class TestFailures:
    def test_timeout_raises_and_quits_driver(self, tmp_path):
        driver = FakeDriver()

        with pytest.raises(ExtractionError, match="No quote response"):
            _collector(tmp_path, driver, timeout=0.05).collect("KC")

        driver.quit.assert_called_once()

    def test_non_200_response_reported_in_timeout(self, tmp_path):
        driver = FakeDriver([_response("1.1", status=403)])

        with pytest.raises(ExtractionError, match="HTTP 403"):
            _collector(tmp_path, driver, timeout=0.05).collect("RM")

        assert driver.body_requests == []

    def test_failed_loading_is_not_read(self, tmp_path):
        driver = FakeDriver(
            [
                [
                    _event(
                        "Network.responseReceived",
                        requestId="1.1",
                        response={"url": API_URL, "status": 200},
                    ),
                    _event("Network.loadingFailed", requestId="1.1"),
                    _event("Network.loadingFinished", requestId="1.1"),
                ]
            ]
        )

        with pytest.raises(ExtractionError):
            _collector(tmp_path, driver, timeout=0.05).collect("RM")

        assert driver.body_requests == []

    def test_unreadable_body_falls_through_to_timeout(self, tmp_path):
        driver = FakeDriver(
            [_response("1.1")], {"1.1": WebDriverException("No resource with given identifier")}
        )

        with pytest.raises(ExtractionError, match="response body unavailable"):
            _collector(tmp_path, driver, timeout=0.05).collect("RM")

        assert driver.body_requests == ["1.1"]

    def test_non_json_body(self, tmp_path):
        driver = FakeDriver([_response("1.1")], {"1.1": {"body": "<html>", "base64Encoded": False}})

        with pytest.raises(ExtractionError, match="not JSON"):
            _collector(tmp_path, driver, timeout=0.05).collect("RM")

    def test_second_matching_response_used_after_bad_first(self, tmp_path, quote_payload):
        driver = FakeDriver(
            [_response("1.1") + _response("1.2")],
            {"1.1": {"body": "oops", "base64Encoded": False}, "1.2": _body(quote_payload)},
        )

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.symbol == "RMF26"
        assert driver.body_requests == ["1.1", "1.2"]

    def test_page_load_timeout_keeps_waiting(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload)})
        driver.get.side_effect = TimeoutException("page load")

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.symbol == "RMF26"
        driver.execute_script.assert_called_once_with("window.stop();")

    def test_navigation_error_raises(self, tmp_path):
        driver = FakeDriver()
        driver.get.side_effect = WebDriverException("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(ExtractionError, match="Browser navigation failed"):
            _collector(tmp_path, driver).collect("RM")

        driver.quit.assert_called_once()

    def test_driver_start_failure(self, tmp_path):
        factory = Mock(side_effect=WebDriverException("chrome not reachable"))

        with pytest.raises(ExtractionError, match="Browser session could not start"):
            _collector(tmp_path, driver_factory=factory).collect("RM")

    def test_quit_error_does_not_mask_result(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload)})
        driver.quit.side_effect = WebDriverException("already closed")

        snapshot = _collector(tmp_path, driver).collect("RM")

        assert snapshot.symbol == "RMF26"

    def test_invalid_payload_raises_after_quit(self, tmp_path):
        driver = FakeDriver([_response("1.1")], {"1.1": _body({"data": []})})

        with pytest.raises(ExtractionError, match="no quotes"):
            _collector(tmp_path, driver).collect("RM")

        driver.quit.assert_called_once()

    def test_error_carries_instrument(self, tmp_path):
        with pytest.raises(ExtractionError) as excinfo:
            _collector(tmp_path, FakeDriver(), timeout=0.05).collect("KC")

        assert excinfo.value.instrument == "KC"


class TestQuoteResponseWatcher:
    def test_malformed_log_entries_are_skipped(self, quote_payload):
        driver = FakeDriver(
            [[{"message": "not json"}, {"level": "INFO"}] + _response("1.1")],
            {"1.1": _body(quote_payload)},
        )
        watcher = QuoteResponseWatcher("/quotes/get", Mock())

        request_id, payload = watcher(driver)

        assert request_id == "1.1"
        assert payload == quote_payload

    def test_returns_false_until_finished(self):
        received, _ = _response("1.1")
        watcher = QuoteResponseWatcher("/quotes/get", Mock())

        assert watcher(FakeDriver([[received]])) is False

    def test_empty_json_body_still_ends_wait(self):
        driver = FakeDriver([_response("1.1")], {"1.1": _body({})})
        watcher = QuoteResponseWatcher("/quotes/get", Mock())

        assert watcher(driver) == ("1.1", {})


class TestHealthCheck:
    def test_success(self, tmp_path):
        collector = _collector(tmp_path, FakeDriver())
        with patch.object(collector._session, "head", return_value=Mock(ok=True)) as mock_head:
            assert collector.health_check() is True
        assert mock_head.call_args.kwargs["timeout"] == 10

    def test_failure(self, tmp_path):
        collector = _collector(tmp_path, FakeDriver())
        with patch.object(
            collector._session, "head", side_effect=requests.exceptions.ConnectionError("down")
        ):
            assert collector.health_check() is False

    def test_close_releases_session(self, tmp_path):
        collector = _collector(tmp_path, FakeDriver())
        with patch.object(collector._session, "close") as mock_close:
            collector.close()
        mock_close.assert_called_once()


class TestExtractSnapshot:
    def test_passes_collector_options(self, tmp_path, quote_payload):
        driver = FakeDriver([_response("1.1")], {"1.1": _body(quote_payload)})

        snapshot = extract_snapshot(
            "RM",
            driver_factory=lambda: driver,
            timeout=1,
            log_file=tmp_path / "q.log",
        )

        assert snapshot.symbol == "RMF26"
        driver.quit.assert_called_once()
