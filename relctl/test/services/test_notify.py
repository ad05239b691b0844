"""Tests for services/notify.py."""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from relctl.core.errors import ErrorCode
from relctl.output.console import MockConsole
from relctl.services.errors import ReconcileError
from relctl.services.model import OutcomeStatus, RunOutcome
from relctl.services.notify import MockNotifier, NullNotifier, WebhookNotifier, format_outcome


def _outcome(**kwargs: object) -> RunOutcome:
    defaults: dict[str, object] = {
        "operation": "deploy",
        "status": OutcomeStatus.SUCCESS,
        "ref": "main",
        "revision": "abcdef0123456789" * 2,
        "release_id": "20260601T090000000000Z",
    }
    defaults.update(kwargs)
    return RunOutcome(**defaults)  # type: ignore[arg-type]


class _Recorder(BaseHTTPRequestHandler):
    bodies: list[bytes] = []
    status_code = 200

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        type(self).bodies.append(self.rfile.read(length))
        self.send_response(type(self).status_code)
        self.end_headers()

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        return None


@pytest.fixture
def server() -> Iterator[HTTPServer]:
    _Recorder.bodies = []
    _Recorder.status_code = 200
    httpd = HTTPServer(("127.0.0.1", 0), _Recorder)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


def _url(httpd: HTTPServer) -> str:
    host, port = httpd.server_address[:2]
    return f"http://{host!s}:{port}/hook"


class TestFormatOutcome:
    def test_success(self) -> None:
        text = format_outcome(_outcome())
        assert text.startswith("deploy succeeded: 20260601T090000000000Z")
        assert "[main@abcdef012345]" in text

    def test_partial_failure_names_services(self) -> None:
        text = format_outcome(
            _outcome(
                status=OutcomeStatus.PARTIAL_FAILURE,
                failures=(ReconcileError("worker", "restart failed"),),
            )
        )
        assert "restart failed: worker" in text

    def test_abort(self) -> None:
        text = format_outcome(
            _outcome(
                status=OutcomeStatus.PRECOMMIT_ABORT,
                error_kind="migration_error",
                message="migrations failed",
            )
        )
        assert "aborted (migration_error): migrations failed" in text


class TestOutcomeRecord:
    def test_to_dict(self) -> None:
        data = _outcome(
            status=OutcomeStatus.PARTIAL_FAILURE,
            restarted=("scheduler",),
            failures=(ReconcileError("worker", "restart failed"),),
        ).to_dict()
        assert data["status"] == "partial_failure"
        assert data["exit_code"] == int(ErrorCode.PARTIAL_FAILURE)
        assert data["restarted"] == ["scheduler"]
        assert data["failures"] == [{"service": "worker", "message": "restart failed"}]
        json.dumps(data)

    def test_exit_codes(self) -> None:
        assert _outcome().exit_code is ErrorCode.OK
        assert _outcome(status=OutcomeStatus.ACTIVATION_FAILED).exit_code is (
            ErrorCode.ACTIVATION_FAILED
        )
        assert _outcome(status=OutcomeStatus.PRECOMMIT_ABORT).exit_code is (
            ErrorCode.PRECOMMIT_ABORT
        )
        assert _outcome(
            status=OutcomeStatus.PRECOMMIT_ABORT, error_kind="insufficient_history"
        ).exit_code is ErrorCode.NO_HISTORY


class TestWebhookNotifier:
    def test_posts_json(self, server: HTTPServer) -> None:
        console = MockConsole()
        WebhookNotifier(_url(server), console, timeout=5).notify(_outcome())

        assert len(_Recorder.bodies) == 1
        payload = json.loads(_Recorder.bodies[0])
        assert payload["text"].startswith("deploy succeeded")
        assert payload["outcome"]["release"] == "20260601T090000000000Z"
        assert not console.has_warning()

    def test_http_error_is_a_warning(self, server: HTTPServer) -> None:
        _Recorder.status_code = 500
        console = MockConsole()
        WebhookNotifier(_url(server), console, timeout=5).notify(_outcome())
        assert console.find("HTTP 500")

    def test_unreachable_is_a_warning(self) -> None:
        console = MockConsole()
        WebhookNotifier("http://127.0.0.1:9/hook", console, timeout=2).notify(_outcome())
        assert console.has_warning()

    @pytest.mark.parametrize("url", ["hooks.example.com/deploy", "http://example.com:bad/hook"])
    def test_malformed_url_is_a_warning(self, url: str) -> None:
        console = MockConsole()
        WebhookNotifier(url, console, timeout=2).notify(_outcome())
        assert console.find("bad webhook URL")


class TestOtherNotifiers:
    def test_null(self) -> None:
        assert NullNotifier().notify(_outcome()) is None

    def test_mock_records(self) -> None:
        notifier = MockNotifier()
        outcome = _outcome()
        notifier.notify(outcome)
        assert notifier.outcomes == [outcome]
