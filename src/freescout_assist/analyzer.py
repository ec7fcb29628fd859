"""
Ticket analyzer: turns a conversation snapshot into a ``TicketAnalysis`` and
renders templated customer replies from it.

Analysis is synchronous, performs no I/O and never mutates its input.
"""

import logging
from typing import Any, Dict, Optional

from . import extractors
from .classifier import IssueClassifier
from .models import Conversation, ThreadType, TicketAnalysis
from .text import strip_html, truncate

logger = logging.getLogger(__name__)

UNKNOWN_CUSTOMER_NAME = "Unknown"
UNKNOWN_CUSTOMER_EMAIL = "unknown@example.com"

DEFAULT_RELEASE_NOTE = (
    "The fix has been submitted for review and will be included in the next plugin update. "
    "You'll receive the update through WordPress's automatic update system."
)

CUSTOMER_MESSAGE_PREVIEW = 500
TEAM_MESSAGE_PREVIEW = 300
RECENT_TEAM_MESSAGES = 3

EXPLANATORY_TEMPLATE = """Hi {name},

Thanks for reporting this. After investigating, I've found that {cause}.

{details}

Please let me know if you have any questions or if there's anything else I can help clarify!"""

NOT_A_BUG_TEMPLATE = """Hi {name},

Thanks for reaching out. {cause}

{details}

Please let me know how you'd like to proceed!"""

BUG_FIX_TEMPLATE = """Hi {name},

Thanks for reporting this. We were able to reproduce it on our end. We've implemented a fix that {fix}.

{release_note}

Here's what was changed:
- {change}

Please let me know if you have any questions!"""


class TicketAnalyzer:
    """Composes normalization, signal extraction and classification."""

    def __init__(self, classifier: Optional[IssueClassifier] = None, release_note: str = DEFAULT_RELEASE_NOTE):
        self.classifier = classifier or IssueClassifier()
        self.release_note = release_note

    def analyze_conversation(self, conversation: Conversation) -> TicketAnalysis:
        threads = conversation.threads
        customer = conversation.customer

        tested_by_team = extractors.check_tested_by_team(threads)
        attachments = extractors.extract_attachments(threads)
        classification = self.classifier.classify(threads)

        analysis = TicketAnalysis(
            ticket_id=str(conversation.id),
            customer_name=customer.display_name if customer else UNKNOWN_CUSTOMER_NAME,
            customer_email=customer.email if customer else UNKNOWN_CUSTOMER_EMAIL,
            issue_description=extractors.extract_issue_description(threads),
            has_attachments=bool(attachments),
            attachments=attachments,
            code_snippets=extractors.extract_code_snippets(threads),
            error_messages=extractors.extract_error_messages(threads),
            is_reproducible=tested_by_team or extractors.check_reproducible(threads),
            tested_by_team=tested_by_team,
            is_bug=classification.is_bug,
            is_third_party_issue=classification.is_third_party,
            root_cause=classification.root_cause,
            suggested_solution=classification.suggested_solution,
        )
        logger.info(
            f"Analyzed ticket {analysis.ticket_id}: bug={analysis.is_bug}, "
            f"third_party={analysis.is_third_party_issue}, tested={analysis.tested_by_team}, "
            f"snippets={len(analysis.code_snippets)}, errors={len(analysis.error_messages)}"
        )
        return analysis

    def generate_customer_reply(
        self,
        analysis: TicketAnalysis,
        fix_description: Optional[str] = None,
        is_explanatory: bool = False,
    ) -> str:
        """
        Render one of three reply templates.

        Explanatory replies explain behaviour that is working as designed; the
        not-a-bug reply covers configuration and feature requests; everything
        else is answered as a fixed bug.
        """
        name_parts = analysis.customer_name.split()
        first_name = name_parts[0] if name_parts else "there"

        if is_explanatory:
            return EXPLANATORY_TEMPLATE.format(
                name=first_name,
                cause=analysis.root_cause or "this is expected behavior",
                details=fix_description or "This is working as designed based on the current system architecture.",
            )

        if not analysis.is_bug:
            return NOT_A_BUG_TEMPLATE.format(
                name=first_name,
                cause=analysis.root_cause
                or "After reviewing your request, this appears to be a configuration or feature request rather than a bug.",
                details=fix_description
                or "I can help you with the configuration, or we can consider this as a feature request for a future update.",
            )

        return BUG_FIX_TEMPLATE.format(
            name=first_name,
            fix=fix_description or "addresses the issue you reported",
            release_note=self.release_note,
            change=fix_description or "Fixed the reported issue",
        )

    def build_ticket_context(
        self,
        conversation: Conversation,
        analysis: Optional[TicketAnalysis] = None,
    ) -> Dict[str, Any]:
        """Compact view of a ticket for an agent deciding what to do next."""
        analysis = analysis or self.analyze_conversation(conversation)
        threads = conversation.threads
        customer_messages = extractors.threads_of_type(threads, ThreadType.CUSTOMER)
        team_messages = [t for t in threads if t.type in (ThreadType.MESSAGE, ThreadType.NOTE)]

        return {
            "ticketId": analysis.ticket_id,
            "customer": {
                "name": analysis.customer_name,
                "email": analysis.customer_email,
            },
            "subject": conversation.subject,
            "status": conversation.status.value,
            "issueDescription": analysis.issue_description,
            "customerMessages": [
                {"date": m.created_at, "content": truncate(strip_html(m.body), CUSTOMER_MESSAGE_PREVIEW)}
                for m in customer_messages
            ],
            "teamMessages": [
                {"date": m.created_at, "content": truncate(strip_html(m.body), TEAM_MESSAGE_PREVIEW)}
                for m in team_messages[-RECENT_TEAM_MESSAGES:]
            ],
            "analysis": {
                "isBug": analysis.is_bug,
                "isThirdPartyIssue": analysis.is_third_party_issue,
                "testedByTeam": analysis.tested_by_team,
                "rootCause": analysis.root_cause,
            },
        }
