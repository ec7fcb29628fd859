"""
Pydantic models for FreeScout API payloads and the derived ticket analysis.

Field names follow the FreeScout REST API (snake_case); embedded resources are
exposed through the ``_embedded`` alias.
"""

import datetime
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .utils import parse_relative_time


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    CLOSED = "closed"
    SPAM = "spam"


class ConversationState(str, Enum):
    PUBLISHED = "published"
    DELETED = "deleted"


class ThreadType(str, Enum):
    CUSTOMER = "customer"
    MESSAGE = "message"
    NOTE = "note"


class ThreadState(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


# --- API resources ---

class Attachment(BaseModel):
    id: int
    file_name: str
    mime_type: str
    size: int
    url: Optional[str] = None


class Thread(BaseModel):
    id: int
    type: Optional[ThreadType] = None
    body: Optional[str] = None
    created_by_customer: Optional[bool] = None
    created_at: Optional[str] = None
    attachments: Optional[List[Attachment]] = None


class Customer(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class ConversationEmbedded(BaseModel):
    threads: Optional[List[Thread]] = None
    customer: Optional[Customer] = None


class Conversation(BaseModel):
    """One helpdesk ticket as returned by ``GET /api/conversations/{id}``."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    number: int
    subject: str
    status: ConversationStatus
    state: Optional[ConversationState] = None
    user_id: Optional[int] = None
    customer_id: Optional[int] = None
    mailbox_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    embedded: Optional[ConversationEmbedded] = Field(default=None, alias="_embedded")

    @property
    def threads(self) -> List[Thread]:
        if self.embedded is None or self.embedded.threads is None:
            return []
        return self.embedded.threads

    @property
    def customer(self) -> Optional[Customer]:
        return self.embedded.customer if self.embedded else None


class PageInfo(BaseModel):
    size: int
    total_elements: int
    total_pages: int
    number: int


class ConversationListEmbedded(BaseModel):
    conversations: Optional[List[Conversation]] = None


class ConversationPage(BaseModel):
    """A page of conversations from the list/search endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    embedded: Optional[ConversationListEmbedded] = Field(default=None, alias="_embedded")
    page: Optional[PageInfo] = None

    @property
    def conversations(self) -> List[Conversation]:
        if self.embedded is None or self.embedded.conversations is None:
            return []
        return self.embedded.conversations


class ConversationUpdate(BaseModel):
    """Partial update body for ``PUT /api/conversations/{id}``."""
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[ConversationStatus] = None
    assign_to: Optional[int] = Field(default=None, alias="assignTo")
    by_user: Optional[int] = Field(default=None, alias="byUser")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Derived analysis ---

class TicketAnalysis(BaseModel):
    """Structured summary of one conversation snapshot. Never sent upstream."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ticket_id: str
    customer_name: str
    customer_email: str
    issue_description: str
    has_attachments: bool
    attachments: List[str] = Field(default_factory=list)
    code_snippets: List[str] = Field(default_factory=list)
    error_messages: List[str] = Field(default_factory=list)
    is_reproducible: bool
    tested_by_team: bool
    is_bug: bool
    is_third_party_issue: bool
    root_cause: Optional[str] = None
    suggested_solution: Optional[str] = None

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialize with the camelCase keys the agent tools present."""
        return json.dumps(self.model_dump(mode="json", by_alias=True, exclude_none=True), indent=indent)


# --- Search ---

SearchStatus = Literal["active", "pending", "closed", "spam", "all"]
ALL_STATUSES = [status.value for status in ConversationStatus]


class SearchFilters(BaseModel):
    """Query description for ``GET /api/conversations``."""

    text_search: Optional[str] = None
    assignee: Optional[Union[Literal["unassigned", "any"], int]] = None
    updated_since: Optional[str] = Field(default=None, description="ISO timestamp or relative shorthand such as '7d', '24h', '30m'.")
    created_since: Optional[str] = Field(default=None, description="ISO timestamp or relative shorthand.")
    mailbox_id: Optional[int] = None
    status: Optional[SearchStatus] = None
    state: Optional[ConversationState] = None
    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1, le=100)

    def to_query_params(self, now: Optional[datetime.datetime] = None) -> List[Tuple[str, str]]:
        """
        Serialize to ordered query parameters.

        Repeated keys are kept as separate tuples so that ``status=all`` expands
        to one ``status`` parameter per concrete status value.
        """
        params: List[Tuple[str, str]] = []

        if self.text_search:
            params.append(("query", self.text_search.strip()))

        if self.assignee is not None:
            if self.assignee == "unassigned":
                params.append(("assignee", "null"))
            elif self.assignee != "any":
                params.append(("assignee", str(self.assignee)))

        if self.status:
            if self.status == "all":
                params.extend(("status", status) for status in ALL_STATUSES)
            else:
                params.append(("status", self.status))

        if self.state:
            params.append(("state", self.state.value))

        if self.mailbox_id is not None:
            params.append(("mailboxId", str(self.mailbox_id)))

        if self.updated_since:
            params.append(("updatedSince", parse_relative_time(self.updated_since, now=now)))
        if self.created_since:
            params.append(("createdSince", parse_relative_time(self.created_since, now=now)))

        if self.page:
            params.append(("page", str(self.page)))
        if self.page_size:
            params.append(("per_page", str(self.page_size)))

        return params
