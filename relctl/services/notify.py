"""Run outcome notifications.

This module provides:
- Notifier: protocol used by the orchestrator
- WebhookNotifier: JSON POST to a webhook using urllib
- NullNotifier: no-op when no webhook is configured
- MockNotifier: records outcomes for tests

Notification is fire-and-forget: a failed notification is reported on the
console and never changes the outcome of a run.
"""

from __future__ import annotations

import http.client
import json
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from relctl import __version__
from relctl.core.timeouts import NOTIFY_TIMEOUT_SECONDS
from relctl.output.console import ConsoleProtocol

from .model import OutcomeStatus, RunOutcome

__all__ = ["MockNotifier", "Notifier", "NullNotifier", "WebhookNotifier", "format_outcome"]


@runtime_checkable
class Notifier(Protocol):
    def notify(self, outcome: RunOutcome) -> None: ...


def format_outcome(outcome: RunOutcome) -> str:
    """One-line human summary, used as the chat message text."""
    target = outcome.release_id or "-"
    rev = (outcome.revision or "")[:12]
    match outcome.status:
        case OutcomeStatus.SUCCESS:
            text = f"{outcome.operation} succeeded: {target}"
        case OutcomeStatus.PARTIAL_FAILURE:
            failed = ", ".join(f.service for f in outcome.failures)
            text = f"{outcome.operation} committed {target}, restart failed: {failed}"
        case OutcomeStatus.ACTIVATION_FAILED:
            text = f"{outcome.operation} FAILED to activate {target}: {outcome.message}"
        case OutcomeStatus.PRECOMMIT_ABORT:
            text = f"{outcome.operation} aborted ({outcome.error_kind}): {outcome.message}"
    if outcome.ref or rev:
        text += f" [{outcome.ref or ''}@{rev}]"
    return text


class NullNotifier:
    def notify(self, outcome: RunOutcome) -> None:
        return None


class WebhookNotifier:
    """POST ``{"text": ..., "outcome": {...}}`` to a webhook URL."""

    def __init__(
        self,
        url: str,
        console: ConsoleProtocol,
        *,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._console = console
        self._ssl_context = ssl.create_default_context()

    def notify(self, outcome: RunOutcome) -> None:
        body = json.dumps({"text": format_outcome(outcome), "outcome": outcome.to_dict()})
        try:
            req = urllib.request.Request(
                self.url,
                data=body.encode("utf-8"),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"relctl/{__version__}",
                },
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=self.timeout, context=self._ssl_context):
                pass
        except urllib.error.HTTPError as e:
            self._console.warning(f"notification rejected: HTTP {e.code}")
        except (urllib.error.URLError, OSError) as e:
            self._console.warning(f"notification failed: {e}")
        except (ValueError, http.client.InvalidURL) as e:
            # no scheme, non-numeric port
            self._console.warning(f"notification skipped, bad webhook URL: {e}")


def _empty_outcomes() -> list[RunOutcome]:
    return []


@dataclass
class MockNotifier:
    outcomes: list[RunOutcome] = field(default_factory=_empty_outcomes)

    def notify(self, outcome: RunOutcome) -> None:
        self.outcomes.append(outcome)
