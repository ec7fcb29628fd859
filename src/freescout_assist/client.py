"""
Async client for the FreeScout REST API.

Every call goes through ``request``, which applies the per-attempt timeout,
maps HTTP and transport failures onto the package exceptions and retries the
transient ones according to the client's ``RetryPolicy``.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type, TypeVar, Union

import httpx
import pydantic

from .exceptions import (
    FreeScoutAPIError,
    FreeScoutConnectionError,
    FreeScoutError,
    FreeScoutRateLimitError,
    FreeScoutResponseError,
    FreeScoutServerError,
    FreeScoutTimeoutError,
)
from .models import (
    Conversation,
    ConversationListEmbedded,
    ConversationPage,
    ConversationState,
    ConversationStatus,
    ConversationUpdate,
    SearchFilters,
    Thread,
    ThreadState,
    ThreadType,
)
from .renderer import markdown_to_html
from .retry import RetryPolicy, execute_with_retry, is_retryable_error
from . import utils

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-FreeScout-API-Key"
ANY_ASSIGNEE = "any"

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)
QueryParams = List[Tuple[str, str]]


class FreeScoutClient:
    """
    Thin async wrapper over the FreeScout API.

    Configuration is immutable after construction. Use as an async context
    manager, or call ``close()``; an injected ``httpx.AsyncClient`` is left open
    for its owner to close.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.retry_policy = retry_policy or RetryPolicy()
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None
        self._sleep = sleep
        logger.info(f"FreeScoutClient initialized for {self.base_url} (retries={self.retry_policy.max_retries}, timeout={self.retry_policy.timeout_ms}ms)")

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "FreeScoutClient":
        return cls(
            base_url=settings.freescout_url,
            api_key=settings.freescout_api_key.get_secret_value(),
            retry_policy=settings.retry_policy(),
            **kwargs,
        )

    async def __aenter__(self) -> "FreeScoutClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # --- Transport ---

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Optional[Any] = None,
        params: Optional[QueryParams] = None,
    ) -> Any:
        """
        Call ``{base_url}/api{path}`` and return the decoded JSON body
        (``None`` for an empty body).

        Raises:
            FreeScoutAPIError: Non-2xx status; 429 and 5xx subclasses are retried first.
            FreeScoutTimeoutError: The final attempt timed out.
            FreeScoutConnectionError: Transport failure.
            FreeScoutResponseError: Body was not valid JSON.
        """
        try:
            return await execute_with_retry(
                lambda: self._send(path, method, body, params),
                self.retry_policy,
                sleep=self._sleep,
            )
        except FreeScoutError as e:
            logger.error(f"FreeScout {method} {path} failed after {e.attempts} attempt(s): {e}")
            raise

    async def _send(self, path: str, method: str, body: Optional[Any], params: Optional[QueryParams]) -> Any:
        url = f"{self.base_url}/api{path}"
        headers = {API_KEY_HEADER: self._api_key, "Accept": "application/json"}
        logger.debug(f"{method} {url} params={params}")

        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                json=body,
                params=params,
                timeout=self.retry_policy.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise FreeScoutTimeoutError(self.retry_policy.timeout_ms) from e
        except httpx.TransportError as e:
            message = str(e) or type(e).__name__
            raise FreeScoutConnectionError(
                f"FreeScout API connection error: {message}",
                retryable=is_retryable_error(e),
            ) from e

        if response.status_code == 429:
            raise FreeScoutRateLimitError(
                f"FreeScout API rate limit (429): {response.text}",
                status_code=429,
                response_text=response.text,
            )
        if response.status_code >= 500:
            raise FreeScoutServerError(
                f"FreeScout API server error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )
        if not response.is_success:
            raise FreeScoutAPIError(
                f"FreeScout API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FreeScoutResponseError(f"Failed to decode JSON response from {method} {path}: {e}") from e

    @staticmethod
    def _validate(model: Type[ModelT], data: Any, path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise FreeScoutResponseError(f"Unexpected {model.__name__} payload from {path}: {e}") from e

    # --- Conversations ---

    async def get_conversation(self, ticket_id: Union[str, int], include_threads: bool = True) -> Conversation:
        path = f"/conversations/{ticket_id}"
        params = [("embed", "threads")] if include_threads else None
        data = await self.request(path, params=params)
        return self._validate(Conversation, data, path)

    async def update_conversation(
        self,
        ticket_id: Union[str, int],
        status: Optional[Union[ConversationStatus, str]] = None,
        assign_to: Optional[int] = None,
        by_user: Optional[int] = None,
    ) -> Any:
        update = ConversationUpdate(status=status, assign_to=assign_to, by_user=by_user)
        return await self.request(f"/conversations/{ticket_id}", "PUT", update.to_payload())

    async def search_conversations(self, filters: SearchFilters, published_only: bool = False) -> ConversationPage:
        """
        Search with explicit filters.

        The search endpoint ignores ``state``; ``published_only`` drops
        non-published conversations client-side and rewrites the page total.
        """
        data = await self.request("/conversations", params=filters.to_query_params())
        page = self._validate(ConversationPage, data or {}, "/conversations")
        if not published_only:
            return page

        kept = [c for c in page.conversations if c.state == ConversationState.PUBLISHED]
        dropped = len(page.conversations) - len(kept)
        if dropped:
            logger.warning(
                f"Search endpoint ignored the state filter; dropped {dropped} non-published conversations client-side. "
                f"Totals reflect this page only."
            )
        page_info = page.page.model_copy(update={"total_elements": len(kept)}) if page.page else None
        return ConversationPage(embedded=ConversationListEmbedded(conversations=kept), page=page_info)

    async def list_conversations(
        self,
        status: Optional[str] = None,
        state: Optional[str] = None,
        assignee: Optional[Union[int, str]] = ANY_ASSIGNEE,
    ) -> ConversationPage:
        """Plain list endpoint. ``assignee=None`` lists unassigned conversations."""
        params: QueryParams = []
        if status:
            params.append(("status", status))
        if state:
            params.append(("state", state))
        if assignee is None:
            params.append(("assignee", "null"))
        elif assignee != ANY_ASSIGNEE:
            params.append(("assignee", str(assignee)))
        data = await self.request("/conversations", params=params)
        return self._validate(ConversationPage, data or {}, "/conversations")

    # --- Threads ---

    async def add_thread(
        self,
        ticket_id: Union[str, int],
        thread_type: Union[ThreadType, str],
        text: str,
        user_id: Optional[int] = None,
        state: Optional[Union[ThreadState, str]] = None,
    ) -> Optional[Thread]:
        """Create a thread; ``state`` distinguishes a draft from a published thread."""
        body = {"type": ThreadType(thread_type).value, "text": text}
        if user_id:
            body["user"] = user_id
        if state:
            body["state"] = ThreadState(state).value

        path = f"/conversations/{ticket_id}/threads"
        data = await self.request(path, "POST", body)
        return self._validate(Thread, data, path) if data else None

    async def add_note(self, ticket_id: Union[str, int], text: str, user_id: Optional[int] = None) -> Optional[Thread]:
        """Internal note; Markdown in ``text`` is rendered to sanitized HTML."""
        return await self.add_thread(ticket_id, ThreadType.NOTE, markdown_to_html(text), user_id)

    async def create_draft_reply(self, ticket_id: Union[str, int], text: str, user_id: int) -> Optional[Thread]:
        """Unsent customer reply for human review, rendered from Markdown."""
        return await self.add_thread(ticket_id, ThreadType.MESSAGE, markdown_to_html(text), user_id, ThreadState.DRAFT)

    # --- Mailboxes ---

    async def get_mailboxes(self) -> Any:
        return await self.request("/mailboxes")

    # --- Ticket identifiers ---

    @staticmethod
    def extract_ticket_id_from_url(url: str) -> Optional[str]:
        return utils.extract_ticket_id_from_url(url)

    @staticmethod
    def parse_ticket_input(value: str) -> str:
        return utils.parse_ticket_input(value)
