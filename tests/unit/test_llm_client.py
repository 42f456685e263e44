from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.exceptions import APIClientError, APITimeoutError
from app.core.llm_client import OpenRouterClient, retry_after_seconds

API_URL = "https://openrouter.test/api/v1/chat/completions"
MESSAGES = [{"role": "user", "content": "extract"}]


def response(status_code, json=None, text="", headers=None):
    request = httpx.Request("POST", API_URL)
    if json is not None:
        return httpx.Response(status_code, json=json, headers=headers, request=request)
    return httpx.Response(status_code, text=text, headers=headers, request=request)


@pytest.fixture
def client():
    return OpenRouterClient(api_key="test-key", api_url=API_URL, max_retries=3, retry_delay=1, app_title="Fiscal Desk")


@pytest.mark.asyncio
async def test_complete_returns_first_choice(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})

        text = await client.complete(MESSAGES, model="vision-model")

    assert text == '{"ok": true}'
    assert post.call_args.args[0] == API_URL
    assert post.call_args.kwargs["json"]["model"] == "vision-model"
    assert post.call_args.kwargs["json"]["temperature"] == 0.0
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert post.call_args.kwargs["headers"]["X-Title"] == "Fiscal Desk"


@pytest.mark.asyncio
async def test_complete_without_choices_is_empty(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json={"choices": []})

        assert await client.complete(MESSAGES, model="vision-model") == ""


@pytest.mark.asyncio
async def test_payment_required_is_not_retried(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post, patch(
        "app.core.llm_client.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        post.return_value = response(402, text="Insufficient credits")

        with pytest.raises(APIClientError) as exc_info:
            await client.complete(MESSAGES, model="vision-model")

    assert exc_info.value.status_code == 402
    assert post.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limit_honors_retry_after(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post, patch(
        "app.core.llm_client.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        post.side_effect = [
            response(429, text="slow down", headers={"Retry-After": "5"}),
            response(200, json={"choices": [{"message": {"content": "done"}}]}),
        ]

        assert await client.complete(MESSAGES, model="vision-model") == "done"

    sleep.assert_awaited_once_with(5.0)


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post, patch(
        "app.core.llm_client.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        post.return_value = response(503, text="unavailable")

        with pytest.raises(APIClientError) as exc_info:
            await client.complete(MESSAGES, model="vision-model")

    assert exc_info.value.status_code == 503
    assert post.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_timeouts_raise_timeout_error(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post, patch(
        "app.core.llm_client.asyncio.sleep", new_callable=AsyncMock
    ):
        post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(APITimeoutError):
            await client.complete(MESSAGES, model="vision-model")

    assert post.await_count == 3


def test_retry_after_is_capped():
    assert retry_after_seconds(response(429, headers={"Retry-After": "600"})) == 30
    assert retry_after_seconds(response(429, headers={"Retry-After": "soon"})) is None
    assert retry_after_seconds(response(429)) is None


@pytest.mark.asyncio
async def test_non_json_success_body_is_client_error(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, text="<html>upstream proxy</html>")

        with pytest.raises(APIClientError, match="not JSON") as exc_info:
            await client.complete(MESSAGES, model="vision-model")

    assert exc_info.value.status_code == 200
