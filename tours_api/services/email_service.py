from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import parseaddr
from typing import Any
import httpx

from tours_api.core.config import settings


class EmailDeliveryError(Exception):
    pass


logger = logging.getLogger("tours_api.email")


def _normalize_email(value: str | None) -> str:
    return str(value or "").strip().lower()


def _provider() -> str:
    return str(settings.EMAIL_PROVIDER or "dummy").strip().lower()


def _mock_send(*, email: str, subject: str, message: str) -> dict[str, Any]:
    logger.warning("[EMAIL MOCK] to=%s subject=%s\n%s", email, subject, message)
    return {
        "provider": "mock_email",
        "status": "accepted",
        "sent": False,
        "mocked": True,
    }


def _send_smtp(*, email: str, subject: str, message: str) -> dict[str, Any]:
    host = str(settings.SMTP_HOST or "").strip()
    port = int(settings.SMTP_PORT or 0)
    username = str(settings.SMTP_USER or "").strip()
    password = str(settings.SMTP_PASSWORD or "").strip()
    sender = str(settings.EMAIL_FROM or "").strip()
    use_tls = bool(settings.SMTP_USE_TLS)
    use_ssl = bool(settings.SMTP_USE_SSL)

    if not host or not port or not parseaddr(sender)[1]:
        raise EmailDeliveryError("SMTP_HOST, SMTP_PORT and EMAIL_FROM must be configured")
    if use_tls and use_ssl:
        raise EmailDeliveryError("SMTP_USE_TLS and SMTP_USE_SSL cannot both be enabled")

    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = email
    msg["Subject"] = subject
    msg.set_content(message)

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=15)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=15)
        with smtp as client:
            client.ehlo()
            if use_tls:
                client.starttls()
                client.ehlo()
            if username:
                client.login(username, password)
            client.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"SMTP delivery failed: {exc}") from exc

    return {"provider": "smtp", "status": "accepted", "sent": True}


def _send_via_email_service(*, email: str, subject: str, message: str) -> dict[str, Any]:
    base_url = str(settings.EMAIL_SERVICE_URL or "").strip().rstrip("/")
    token = str(settings.INTERNAL_SERVICE_TOKEN or "").strip()
    if not base_url:
        raise EmailDeliveryError("EMAIL_SERVICE_URL is not configured")
    if not token:
        raise EmailDeliveryError("INTERNAL_SERVICE_TOKEN is not configured")
    try:
        with httpx.Client(timeout=15.0) as client:
            response = client.post(
                f"{base_url}/internal/send",
                headers={"X-Internal-Token": token, "Content-Type": "application/json"},
                json={"email": email, "subject": subject, "body": message},
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"email-service request failed: {exc}") from exc
    if response.status_code >= 400:
        raise EmailDeliveryError(f"email-service error: HTTP {response.status_code} {response.text}")
    return {"provider": "email-service", "status": "accepted", "sent": True}


def send_email(*, email: str, subject: str, message: str) -> dict[str, Any]:
    normalized_email = _normalize_email(email)
    if not normalized_email:
        raise EmailDeliveryError("Recipient email is empty")

    provider = _provider()
    if provider in {"", "dummy", "mock", "console"}:
        return _mock_send(email=normalized_email, subject=subject, message=message)
    if provider in {"service", "email_service"}:
        return _send_via_email_service(email=normalized_email, subject=subject, message=message)
    if provider == "smtp":
        return _send_smtp(email=normalized_email, subject=subject, message=message)

    raise EmailDeliveryError(f"Unknown EMAIL_PROVIDER: {provider}")


def email_provider_health() -> dict[str, Any]:
    provider = _provider()
    if provider in {"", "dummy", "mock", "console"}:
        return {"provider": "dummy", "status": "ok", "can_send": True, "issues": []}
    if provider in {"service", "email_service"}:
        issues = []
        if not str(settings.EMAIL_SERVICE_URL or "").strip():
            issues.append("EMAIL_SERVICE_URL is not configured")
        if not str(settings.INTERNAL_SERVICE_TOKEN or "").strip():
            issues.append("INTERNAL_SERVICE_TOKEN is not configured")
        return {"provider": "email-service", "status": "degraded" if issues else "ok", "can_send": not issues, "issues": issues}
    if provider == "smtp":
        issues = []
        if not str(settings.SMTP_HOST or "").strip():
            issues.append("SMTP_HOST is not configured")
        if not parseaddr(str(settings.EMAIL_FROM or ""))[1]:
            issues.append("EMAIL_FROM is not configured")
        return {"provider": "smtp", "status": "degraded" if issues else "ok", "can_send": not issues, "issues": issues}
    return {"provider": provider, "status": "error", "can_send": False, "issues": [f"Unknown EMAIL_PROVIDER: {provider}"]}
