import json

import httpx
import pytest
import respx

from freescout_assist.client import API_KEY_HEADER, FreeScoutClient
from freescout_assist.exceptions import (
    FreeScoutAPIError,
    FreeScoutConnectionError,
    FreeScoutResponseError,
    FreeScoutServerError,
    FreeScoutTimeoutError,
)
from freescout_assist.models import SearchFilters, ThreadType

from .factories import API_KEY, BASE_URL, conversation_payload, thread


def page_payload(conversations, total=None):
    return {
        "_embedded": {"conversations": conversations},
        "page": {"size": 50, "total_elements": total if total is not None else len(conversations), "total_pages": 1, "number": 1},
    }


@pytest.mark.asyncio
async def test_get_conversation_sends_key_and_embeds_threads(make_client, customer):
    payload = conversation_payload([thread("customer", "<p>Help</p>")], customer)
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/conversations/123").mock(return_value=httpx.Response(200, json=payload))
        async with make_client() as client:
            conversation = await client.get_conversation("123")

    request = route.calls.last.request
    assert request.headers[API_KEY_HEADER] == API_KEY
    assert request.headers["Accept"] == "application/json"
    assert request.url.params["embed"] == "threads"
    assert str(request.url).startswith(f"{BASE_URL}/api/conversations/123?")
    assert conversation.id == 123
    assert conversation.customer.email == "jane@example.com"
    assert conversation.threads[0].type == ThreadType.CUSTOMER


@pytest.mark.asyncio
async def test_request_returns_decoded_json(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(side_effect=[
            httpx.Response(502, text="Bad gateway"),
            httpx.Response(200, json={"a": 1}),
        ])
        async with make_client() as client:
            result = await client.request("/mailboxes")

    assert result == {"a": 1}
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried(make_client, fast_sleep):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/conversations/999").mock(return_value=httpx.Response(404, text="Not found"))
        async with make_client() as client:
            with pytest.raises(FreeScoutAPIError) as exc_info:
                await client.get_conversation(999)

    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == "FreeScout API error: 404 - Not found"
    assert route.call_count == 1
    fast_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limit_then_success(make_client, fast_sleep):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(side_effect=[
            httpx.Response(429, text="Too many requests"),
            httpx.Response(200, json={"_embedded": {"mailboxes": [{"id": 1, "name": "Support"}]}}),
        ])
        async with make_client() as client:
            mailboxes = await client.get_mailboxes()

    assert mailboxes["_embedded"]["mailboxes"][0]["name"] == "Support"
    assert route.call_count == 2
    assert fast_sleep.await_count == 1


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(return_value=httpx.Response(503, text="Unavailable"))
        async with make_client() as client:
            with pytest.raises(FreeScoutServerError) as exc_info:
                await client.get_mailboxes()

    assert exc_info.value.status_code == 503
    assert exc_info.value.attempts == 4
    assert route.call_count == 4


@pytest.mark.asyncio
async def test_timeout_is_reported_in_milliseconds(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(side_effect=httpx.ReadTimeout("timed out"))
        async with make_client() as client:
            with pytest.raises(FreeScoutTimeoutError, match="timeout after 500ms"):
                await client.get_mailboxes()

    assert route.call_count == 4


@pytest.mark.asyncio
async def test_connection_reset_is_retried(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(side_effect=[
            httpx.ConnectError("[Errno 104] Connection reset by peer"),
            httpx.Response(200, json={}),
        ])
        async with make_client() as client:
            assert await client.get_mailboxes() == {}

    assert route.call_count == 2


@pytest.mark.asyncio
async def test_unresolvable_host_is_not_retried(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        route = respx_mock.get("/api/mailboxes").mock(side_effect=httpx.ConnectError("Name or service not known"))
        async with make_client() as client:
            with pytest.raises(FreeScoutConnectionError):
                await client.get_mailboxes()

    assert route.call_count == 1


@pytest.mark.asyncio
async def test_malformed_json(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        respx_mock.get("/api/mailboxes").mock(return_value=httpx.Response(200, content=b"<html>oops</html>"))
        async with make_client() as client:
            with pytest.raises(FreeScoutResponseError):
                await client.get_mailboxes()


@pytest.mark.asyncio
async def test_unexpected_conversation_shape(make_client):
    async with respx.mock(base_url=BASE_URL) as respx_mock:
        respx_mock.get("/api/conversations/1").mock(return_value=httpx.Response(200, json={"id": "x"}))
        async with make_client() as client:
            with pytest.raises(FreeScoutResponseError):
                await client.get_conversation(1)


class TestSearch:

    @pytest.mark.asyncio
    async def test_all_statuses_expand_to_repeated_parameters(self, make_client):
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.get("/api/conversations").mock(return_value=httpx.Response(200, json=page_payload([])))
            async with make_client() as client:
                await client.search_conversations(SearchFilters(status="all"))

        params = route.calls.last.request.url.params
        assert params.get_list("status") == ["active", "pending", "closed", "spam"]
        assert "all" not in params.get_list("status")

    @pytest.mark.asyncio
    async def test_filters_are_serialized(self, make_client):
        filters = SearchFilters(
            text_search="  checkout  ",
            assignee="unassigned",
            updated_since="2024-01-01T00:00:00Z",
            mailbox_id=2,
            page=3,
            page_size=25,
        )
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.get("/api/conversations").mock(return_value=httpx.Response(200, json=page_payload([])))
            async with make_client() as client:
                await client.search_conversations(filters)

        params = route.calls.last.request.url.params
        assert params["query"] == "checkout"
        assert params["assignee"] == "null"
        assert params["updatedSince"] == "2024-01-01T00:00:00Z"
        assert params["mailboxId"] == "2"
        assert params["page"] == "3"
        assert params["per_page"] == "25"

    @pytest.mark.asyncio
    async def test_relative_dates_become_timestamps(self, make_client):
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.get("/api/conversations").mock(return_value=httpx.Response(200, json=page_payload([])))
            async with make_client() as client:
                await client.search_conversations(SearchFilters(created_since="7d"))

        created_since = route.calls.last.request.url.params["createdSince"]
        assert created_since != "7d"
        assert created_since.endswith("Z")

    @pytest.mark.asyncio
    async def test_published_only_filters_client_side(self, make_client):
        conversations = [
            conversation_payload(id=1, number=1),
            conversation_payload(id=2, number=2, state="deleted"),
        ]
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            respx_mock.get("/api/conversations").mock(return_value=httpx.Response(200, json=page_payload(conversations)))
            async with make_client() as client:
                page = await client.search_conversations(SearchFilters(), published_only=True)

        assert [c.id for c in page.conversations] == [1]
        assert page.page.total_elements == 1

    @pytest.mark.asyncio
    async def test_list_unassigned(self, make_client):
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.get("/api/conversations").mock(
                return_value=httpx.Response(200, json=page_payload([conversation_payload()]))
            )
            async with make_client() as client:
                page = await client.list_conversations(status="active", assignee=None)

        params = route.calls.last.request.url.params
        assert params["status"] == "active"
        assert params["assignee"] == "null"
        assert len(page.conversations) == 1


class TestThreads:

    @pytest.mark.asyncio
    async def test_create_draft_reply_renders_markdown(self, make_client):
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.post("/api/conversations/123/threads").mock(return_value=httpx.Response(201))
            async with make_client() as client:
                result = await client.create_draft_reply("123", "Hi, this is **bold**", user_id=7)

        body = json.loads(route.calls.last.request.content)
        assert body == {
            "type": "message",
            "text": "<p>Hi, this is <strong>bold</strong></p>",
            "user": 7,
            "state": "draft",
        }
        assert result is None

    @pytest.mark.asyncio
    async def test_add_note_renders_lists_and_keeps_html(self, make_client):
        created = thread("note", "<p>Hello</p>")
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.post("/api/conversations/123/threads").mock(return_value=httpx.Response(201, json=created))
            async with make_client() as client:
                result = await client.add_note(123, "<p>Hello</p>\n\n- checked logs\n- reproduced", user_id=1)

        body = json.loads(route.calls.last.request.content)
        assert body["type"] == "note"
        assert body["text"].startswith("<p>Hello</p>")
        assert "<ul>" in body["text"] and "<li>checked logs</li>" in body["text"]
        assert "state" not in body
        assert result.type == ThreadType.NOTE

    @pytest.mark.asyncio
    async def test_update_conversation(self, make_client):
        async with respx.mock(base_url=BASE_URL) as respx_mock:
            route = respx_mock.put("/api/conversations/123").mock(return_value=httpx.Response(204))
            async with make_client() as client:
                result = await client.update_conversation(123, status="closed", assign_to=5, by_user=1)

        assert json.loads(route.calls.last.request.content) == {"status": "closed", "assignTo": 5, "byUser": 1}
        assert result is None


@pytest.mark.asyncio
async def test_injected_http_client_is_left_open(fast_sleep, retry_policy):
    http_client = httpx.AsyncClient()
    async with FreeScoutClient(BASE_URL, API_KEY, retry_policy, http_client=http_client, sleep=fast_sleep):
        pass
    assert not http_client.is_closed
    await http_client.aclose()


def test_ticket_helpers_are_exposed():
    assert FreeScoutClient.parse_ticket_input("ticket #77") == "77"
    assert FreeScoutClient.extract_ticket_id_from_url("https://host/conversation/4821") == "4821"
