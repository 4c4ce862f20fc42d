"""Notification sink contract and transactional email client."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from urllib import error, request

import structlog

from .schemas import Application


class Template(str, Enum):
    """Pipeline events that produce an applicant notification."""

    APPLICATION_RECEIVED = "application_received"
    PRESCREEN_PASSED = "prescreen_passed"
    TEST_INVITATION = "test_invitation"
    TEST_REMINDER = "test_reminder"
    TEST_EXPIRED = "test_expired"
    FINAL_CHANCE = "final_chance"
    TEST_RECEIVED = "test_received"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    INFO_REQUESTED = "info_requested"


DEFAULT_TEMPLATE_IDS: dict[Template, int] = {
    Template.APPLICATION_RECEIVED: 1,
    Template.PRESCREEN_PASSED: 2,
    Template.TEST_INVITATION: 3,
    Template.TEST_REMINDER: 4,
    Template.TEST_EXPIRED: 5,
    Template.FINAL_CHANCE: 6,
    Template.TEST_RECEIVED: 7,
    Template.UNDER_REVIEW: 8,
    Template.APPROVED: 11,
    Template.REJECTED: 12,
    Template.WAITLISTED: 13,
    Template.INFO_REQUESTED: 17,
}


@dataclass(frozen=True, slots=True)
class Recipient:
    email: str
    name: str

    @classmethod
    def for_application(cls, application: Application) -> "Recipient":
        return cls(email=application.email, name=application.full_name)


@runtime_checkable
class NotificationSink(Protocol):
    """Best-effort notification delivery.

    Implementations must never raise; a failed send returns ``False`` and
    the caller carries on with its own transaction.
    """

    def send(self, template: Template, recipient: Recipient, params: dict[str, Any]) -> bool:
        """Deliver one templated notification."""


class LoggingNotificationSink:
    """Sink used when no email endpoint is configured."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    def send(self, template: Template, recipient: Recipient, params: dict[str, Any]) -> bool:
        self._logger.info(
            "notification.logged",
            template=template.value,
            recipient=recipient.email,
            params=params,
        )
        return True


class HTTPNotificationSink:
    """Transactional email API client (template id + params)."""

    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        template_ids: dict[str, int] | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self._template_ids = dict(DEFAULT_TEMPLATE_IDS)
        for key, value in (template_ids or {}).items():
            self._template_ids[Template(key)] = value
        self._logger = structlog.get_logger(__name__)

    def send(self, template: Template, recipient: Recipient, params: dict[str, Any]) -> bool:
        body = {
            "to": [{"email": recipient.email, "name": recipient.name}],
            "templateId": self._template_ids[template],
            "params": params,
        }
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["api-key"] = self._api_key
        data = json.dumps(body, ensure_ascii=False, default=str).encode("utf-8")
        req = request.Request(self._endpoint, data=data, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:
                resp.read()
        except error.HTTPError as exc:
            self._logger.warning(
                "notification.send_failed",
                template=template.value,
                status=exc.code,
            )
            return False
        except (error.URLError, TimeoutError, OSError) as exc:
            self._logger.warning(
                "notification.send_failed",
                template=template.value,
                error=str(exc),
            )
            return False
        return True


def notify(
    sink: NotificationSink,
    template: Template,
    application: Application,
    **params: Any,
) -> bool:
    """Send a notification to an applicant with the common params filled in."""
    payload = {
        "fullName": application.full_name,
        "applicationNumber": application.application_number,
    }
    payload.update(params)
    try:
        return sink.send(template, Recipient.for_application(application), payload)
    except Exception as exc:  # noqa: BLE001 - sinks must not abort callers
        structlog.get_logger(__name__).error(
            "notification.sink_raised",
            template=template.value,
            error=str(exc),
        )
        return False


__all__ = [
    "DEFAULT_TEMPLATE_IDS",
    "HTTPNotificationSink",
    "LoggingNotificationSink",
    "NotificationSink",
    "Recipient",
    "Template",
    "notify",
]
