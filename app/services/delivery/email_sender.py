"""Outbound email through the Resend HTTP API."""

from decimal import Decimal
from html import escape
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _format_amount(amount: Optional[Decimal]) -> Optional[str]:
    if amount is None:
        return None
    text = f"{Decimal(amount):,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def render_document_email(document: Any) -> Dict[str, str]:
    """Build subject and HTML for the "new document available" notice.

    Args:
        document: Document with ``client`` and ``obligation`` loaded

    Returns:
        Dict with ``subject`` and ``html``
    """
    obligation_name = escape(document.obligation.name)
    rows = [
        f"<p><strong>Obligation:</strong> {obligation_name}</p>",
        f"<p><strong>Competence:</strong> {escape(document.competence)}</p>",
    ]
    if document.due_at:
        rows.append(f"<p><strong>Due date:</strong> {document.due_at.strftime('%d/%m/%Y')}</p>")
    amount = _format_amount(document.amount)
    if amount:
        rows.append(f"<p><strong>Amount:</strong> {amount}</p>")

    html = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family: sans-serif; background-color: #f6f9fc; padding: 20px;\">"
        "<div style=\"max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 40px;\">"
        "<h1>New document available</h1>"
        f"<p>Hello <strong>{escape(document.client.name)}</strong>,</p>"
        "<p>A new document is available in your client area:</p>"
        f"<div style=\"background-color: #f8f9fa; padding: 20px;\">{''.join(rows)}</div>"
        f"<a href=\"{escape(settings.delivery.client_area_url)}\">Open client area</a>"
        f"<p style=\"color: #666; font-size: 14px;\">{escape(settings.app_name)}</p>"
        "</div></body></html>"
    )
    return {"subject": f"New document available - {document.obligation.name}", "html": html}


class EmailSender:
    """Minimal Resend client. One request per message, no retries here."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.delivery.resend_api_key
        self.api_url = api_url or settings.delivery.resend_api_url
        self.sender = settings.delivery.sender

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one email.

        Returns:
            The provider message id.

        Raises:
            ConfigurationError: If no API key is configured.
            APIClientError: If the provider rejects the message.
        """
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")

        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise APITimeoutError(f"Email provider timed out: {str(e)}", original_error=e)
        except httpx.HTTPError as e:
            raise APIClientError(f"Email provider unreachable: {str(e)}", original_error=e)

        if response.status_code >= 400:
            LOGGER.error(
                f"Email provider rejected message: {response.text}",
                extra={"status_code": response.status_code, "to": to},
            )
            raise APIClientError(
                f"Email provider error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json() or {}
        except ValueError as e:
            raise APIClientError(
                "Email provider returned a response that is not JSON",
                original_error=e,
                status_code=response.status_code,
            )
        email_id = body.get("id") if isinstance(body, dict) else None
        if not email_id:
            raise APIClientError("Email provider response did not contain an id")
        return email_id
