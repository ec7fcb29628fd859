"""
FreeScout assist: helpdesk API client, ticket analysis and reply rendering
for support agents.
"""

from .analyzer import TicketAnalyzer
from .classifier import IssueClassification, IssueClassifier
from .client import FreeScoutClient
from .exceptions import (
    ConfigurationError,
    FreeScoutAPIError,
    FreeScoutConnectionError,
    FreeScoutError,
    FreeScoutRateLimitError,
    FreeScoutResponseError,
    FreeScoutServerError,
    FreeScoutTimeoutError,
    TicketInputError,
)
from .models import (
    Attachment,
    Conversation,
    ConversationPage,
    ConversationState,
    ConversationStatus,
    Customer,
    SearchFilters,
    Thread,
    ThreadState,
    ThreadType,
    TicketAnalysis,
)
from .renderer import markdown_to_html, sanitize_html
from .retry import RetryPolicy, execute_with_retry, is_retryable_error
from .text import strip_html
from .utils import extract_ticket_id_from_url, parse_relative_time, parse_ticket_input

__version__ = "0.1.0"
