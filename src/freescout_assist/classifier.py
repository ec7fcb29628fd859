"""
Keyword classifier deciding whether a ticket is an actionable bug.

Third-party, configuration and feature-request phrasing always win over a bug
verdict, so an ambiguous ticket is never labelled as a bug.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .models import Thread
from .text import strip_html

logger = logging.getLogger(__name__)

ROOT_CAUSE_THIRD_PARTY = "Third-party plugin or system limitation"
ROOT_CAUSE_CONFIGURATION = "Configuration or setup issue"
ROOT_CAUSE_FEATURE_REQUEST = "Feature request, not a bug"

THIRD_PARTY_INDICATORS = [
    "elementor",
    "third-party plugin",
    "another plugin",
    "theme conflict",
    "hosting limitation",
    "server configuration",
    "php version",
    "wordpress core",
]

FEATURE_REQUEST_KEYWORDS = [
    "would be nice",
    "feature request",
    "enhancement",
    "could you add",
    "is it possible to",
    "would like to",
]

CONFIGURATION_KEYWORDS = [
    "settings",
    "configuration",
    "not configured",
    "setup",
    "installation",
]


@dataclass(frozen=True)
class IssueClassification:
    is_bug: bool
    is_third_party: bool
    is_feature_request: bool
    is_config_issue: bool
    root_cause: Optional[str] = None
    # Filled in by a human or an LLM, never by the heuristics.
    suggested_solution: Optional[str] = None


class IssueClassifier:
    """Classifies the concatenated, normalized text of a conversation's threads."""

    def __init__(
        self,
        third_party_indicators: Optional[Sequence[str]] = None,
        feature_request_keywords: Optional[Sequence[str]] = None,
        configuration_keywords: Optional[Sequence[str]] = None,
    ):
        self.third_party_indicators: List[str] = list(third_party_indicators or THIRD_PARTY_INDICATORS)
        self.feature_request_keywords: List[str] = list(feature_request_keywords or FEATURE_REQUEST_KEYWORDS)
        self.configuration_keywords: List[str] = list(configuration_keywords or CONFIGURATION_KEYWORDS)

    @staticmethod
    def full_text(threads: Sequence[Thread]) -> str:
        return "\n".join(strip_html(thread.body) for thread in threads).lower()

    def classify_text(self, text: str) -> IssueClassification:
        lowered = text.lower()
        is_third_party = any(indicator in lowered for indicator in self.third_party_indicators)
        is_feature_request = any(keyword in lowered for keyword in self.feature_request_keywords)
        is_config_issue = any(keyword in lowered for keyword in self.configuration_keywords)

        if is_third_party:
            root_cause = ROOT_CAUSE_THIRD_PARTY
        elif is_config_issue:
            root_cause = ROOT_CAUSE_CONFIGURATION
        elif is_feature_request:
            root_cause = ROOT_CAUSE_FEATURE_REQUEST
        else:
            root_cause = None

        return IssueClassification(
            is_bug=not is_feature_request and not is_config_issue and not is_third_party,
            is_third_party=is_third_party,
            is_feature_request=is_feature_request,
            is_config_issue=is_config_issue,
            root_cause=root_cause,
        )

    def classify(self, threads: Sequence[Thread]) -> IssueClassification:
        classification = self.classify_text(self.full_text(threads))
        logger.debug(f"Classified {len(threads)} threads: {classification}")
        return classification
