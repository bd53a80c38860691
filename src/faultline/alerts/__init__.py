"""
Kill-switch notifications for faultline.

When a kill switch fires with the ``alert`` action, the engine builds a
:class:`KillSwitchAlert` and asks an :class:`AlertManager` to deliver it to
the experiment's ``notify_channels``. Channels are registered by name and
rendered per kind: Slack incoming webhook, PagerDuty Events API v2, plain
JSON webhook, or an in-process callback.

HTTP delivery uses urllib and is synchronous; the engine calls
:meth:`AlertManager.notify` from a worker thread.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class ChannelKind(Enum):
    SLACK = "slack"
    PAGERDUTY = "pagerduty"
    WEBHOOK = "webhook"
    CALLBACK = "callback"


class AlertSeverity(Enum):
    """Alert severity, compared by rank."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(AlertSeverity).index(self)


@dataclass(frozen=True)
class KillSwitchAlert:
    """What a responder needs to know when an experiment's kill switch fires."""

    experiment_id: str
    experiment_name: str
    trigger: str
    action: str = "alert"
    active_strategies: tuple[str, ...] = ()
    severity: AlertSeverity = AlertSeverity.CRITICAL
    timestamp: float = field(default_factory=time.time)

    @property
    def title(self) -> str:
        return f"Chaos kill switch: {self.experiment_name}"

    @property
    def summary(self) -> str:
        return f"Kill switch triggered by {self.trigger} with {len(self.active_strategies)} active faults"

    @property
    def dedup_key(self) -> str:
        # one incident per experiment run, however often the switch fires
        return f"faultline-{self.experiment_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "severity": self.severity.value,
            "experiment_id": self.experiment_id,
            "experiment_name": self.experiment_name,
            "trigger": self.trigger,
            "action": self.action,
            "active_strategies": list(self.active_strategies),
            "timestamp": self.timestamp,
        }


@dataclass
class NotifyChannel:
    """A named destination for kill-switch alerts."""

    name: str
    kind: ChannelKind
    url: str = ""
    routing_key: str = ""  # PagerDuty integration key
    callback: Callable[[KillSwitchAlert], None] | None = None
    min_severity: AlertSeverity = AlertSeverity.WARNING
    enabled: bool = True

    def accepts(self, alert: KillSwitchAlert) -> bool:
        return self.enabled and alert.severity.rank >= self.min_severity.rank


@dataclass(frozen=True)
class Delivery:
    """Outcome of handing one alert to one channel."""

    channel: str
    ok: bool
    status_code: int = 0
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "ok": self.ok, "status_code": self.status_code, "error": self.error}


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def render_slack(alert: KillSwitchAlert) -> dict[str, Any]:
    strategies = ", ".join(alert.active_strategies) or "none"
    return {
        "text": alert.title,
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": alert.title}},
            {"type": "section", "text": {"type": "mrkdwn", "text": alert.summary}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Experiment:* {alert.experiment_name}"},
                    {"type": "mrkdwn", "text": f"*Trigger:* {alert.trigger}"},
                    {"type": "mrkdwn", "text": f"*Action:* {alert.action}"},
                ],
            },
            {"type": "context", "elements": [{"type": "mrkdwn", "text": f"Active faults: {strategies}"}]},
        ],
    }


def render_pagerduty(alert: KillSwitchAlert, routing_key: str = "") -> dict[str, Any]:
    """PagerDuty Events API v2 ``trigger`` event, deduplicated per experiment."""
    event: dict[str, Any] = {
        "event_action": "trigger",
        "dedup_key": alert.dedup_key,
        "payload": {
            "summary": f"{alert.title}: {alert.summary}",
            "severity": alert.severity.value,
            "source": "faultline",
            "component": alert.experiment_name,
            "class": alert.trigger,
            "custom_details": {"active_strategies": list(alert.active_strategies), "action": alert.action},
        },
    }
    if routing_key:
        event["routing_key"] = routing_key
    return event


def render_webhook(alert: KillSwitchAlert) -> dict[str, Any]:
    return alert.to_dict()


# ---------------------------------------------------------------------------
# AlertManager
# ---------------------------------------------------------------------------


class AlertManager:
    """
    Named kill-switch channels and their delivery log.

    Usage:
        manager = AlertManager()
        manager.register(NotifyChannel("oncall", ChannelKind.PAGERDUTY,
                                       url="https://events.pagerduty.com/v2/enqueue",
                                       routing_key="..."))
        manager.notify(alert, ["oncall"])
    """

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._channels: dict[str, NotifyChannel] = {}
        self._deliveries: list[Delivery] = []

    def register(self, channel: NotifyChannel) -> None:
        self._channels[channel.name] = channel

    def unregister(self, name: str) -> None:
        self._channels.pop(name, None)

    @property
    def channel_names(self) -> list[str]:
        return list(self._channels)

    def notify(self, alert: KillSwitchAlert, channel_names: Iterable[str] | None = None) -> list[Delivery]:
        """Deliver *alert* to each named channel once; every channel when None.

        Unregistered names come back as failed deliveries. Channels that are
        disabled or below their severity floor are skipped without a record.
        """
        names = list(self._channels) if channel_names is None else list(dict.fromkeys(channel_names))
        deliveries: list[Delivery] = []
        for name in names:
            channel = self._channels.get(name)
            if channel is None:
                delivery = Delivery(name, ok=False, error="Unknown channel")
            elif not channel.accepts(alert):
                continue
            else:
                delivery = self._dispatch(channel, alert)
            if not delivery.ok:
                logger.warning("Kill-switch alert to '%s' not delivered: %s", name, delivery.error)
            deliveries.append(delivery)
        self._deliveries.extend(deliveries)
        return deliveries

    def _dispatch(self, channel: NotifyChannel, alert: KillSwitchAlert) -> Delivery:
        if channel.kind is ChannelKind.CALLBACK:
            if channel.callback is None:
                return Delivery(channel.name, ok=False, error="No callback configured")
            try:
                channel.callback(alert)
            except Exception as e:
                return Delivery(channel.name, ok=False, error=str(e))
            return Delivery(channel.name, ok=True)

        if not channel.url:
            return Delivery(channel.name, ok=False, error="No URL configured")
        if channel.kind is ChannelKind.SLACK:
            body = render_slack(alert)
        elif channel.kind is ChannelKind.PAGERDUTY:
            body = render_pagerduty(alert, channel.routing_key)
        else:
            body = render_webhook(alert)
        try:
            status = self._post(channel.url, body)
        except urllib.error.HTTPError as e:
            return Delivery(channel.name, ok=False, status_code=e.code, error=str(e))
        except (urllib.error.URLError, OSError) as e:
            return Delivery(channel.name, ok=False, error=str(e))
        return Delivery(channel.name, ok=True, status_code=status)

    def _post(self, url: str, body: dict[str, Any]) -> int:
        """POST *body* as JSON and return the HTTP status."""
        request = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=self.timeout_seconds) as response:
            return response.status

    @property
    def deliveries(self) -> list[Delivery]:
        return list(self._deliveries)

    @property
    def failures(self) -> list[Delivery]:
        return [d for d in self._deliveries if not d.ok]


__all__ = [
    "AlertManager", "AlertSeverity", "ChannelKind", "Delivery", "KillSwitchAlert",
    "NotifyChannel", "render_pagerduty", "render_slack", "render_webhook",
]
