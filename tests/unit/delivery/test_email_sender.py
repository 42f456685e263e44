from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from app.services.delivery.email_sender import EmailSender, render_document_email


def resend_response(status_code, json=None, text=""):
    request = httpx.Request("POST", "https://api.resend.com/emails")
    if json is not None:
        return httpx.Response(status_code, json=json, request=request)
    return httpx.Response(status_code, text=text, request=request)


def test_render_escapes_and_formats():
    document = SimpleNamespace(
        client=SimpleNamespace(name="Ana <b>Souza</b>"),
        obligation=SimpleNamespace(name="Carnê Leão"),
        competence="03/2025",
        due_at=date(2025, 3, 31),
        amount=Decimal("1234.56"),
    )

    message = render_document_email(document)

    assert message["subject"] == "New document available - Carnê Leão"
    assert "Ana &lt;b&gt;Souza&lt;/b&gt;" in message["html"]
    assert "R$ 1.234,56" in message["html"]
    assert "31/03/2025" in message["html"]


@pytest.mark.asyncio
async def test_send_returns_provider_id():
    sender = EmailSender(api_key="re_test")
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = resend_response(200, json={"id": "email-1"})

        email_id = await sender.send("ana@example.com", "Subject", "<p>Hi</p>")

    assert email_id == "email-1"
    assert post.call_args.kwargs["json"]["to"] == ["ana@example.com"]
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer re_test"


@pytest.mark.asyncio
async def test_send_without_key():
    with pytest.raises(ConfigurationError):
        await EmailSender(api_key="").send("ana@example.com", "Subject", "<p>Hi</p>")


@pytest.mark.asyncio
async def test_provider_rejection_carries_status():
    sender = EmailSender(api_key="re_test")
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = resend_response(422, text='{"message": "Invalid to field"}')

        with pytest.raises(APIClientError) as exc_info:
            await sender.send("not-an-email", "Subject", "<p>Hi</p>")

    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_provider_timeout():
    sender = EmailSender(api_key="re_test")
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(APITimeoutError):
            await sender.send("ana@example.com", "Subject", "<p>Hi</p>")


@pytest.mark.asyncio
async def test_non_json_response_is_client_error():
    sender = EmailSender(api_key="re_test")
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = resend_response(200, text="<html>gateway</html>")

        with pytest.raises(APIClientError, match="not JSON"):
            await sender.send("ana@example.com", "Subject", "<p>hi</p>")
