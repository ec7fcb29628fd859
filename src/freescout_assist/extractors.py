"""
Signal extraction over a conversation's threads.

Every heuristic is driven by the pattern and keyword lists defined at module
level; callers may pass their own lists to extend or replace them. The lists
are seeds, not an exhaustive vocabulary.
"""

import logging
import re
from typing import Iterable, List, Optional, Pattern, Sequence

from .models import Thread, ThreadType
from .text import strip_html

logger = logging.getLogger(__name__)

NO_CUSTOMER_MESSAGES = "No customer messages found"
ADDITIONAL_CONTEXT_LABEL = "Additional context:"
MIN_FOLLOW_UP_LENGTH = 50
MIN_INLINE_CODE_LENGTH = 20
MIN_ERROR_LENGTH = 10
MAX_ERROR_LENGTH = 500

PRE_BLOCK_PATTERN = re.compile(r"<pre[^>]*>.*?</pre>", re.DOTALL)
INLINE_CODE_PATTERN = re.compile(r"<code[^>]*>.*?</code>", re.DOTALL)

CODE_LINE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"^\s*//"),           # line comment
    re.compile(r"^\s*#"),            # comment or preprocessor directive
    re.compile(r"^\s*\*"),           # block comment continuation
    re.compile(r"function\s+\w+"),
    re.compile(r"class\s+\w+"),
    re.compile(r"\$\w+"),            # sigil variable
    re.compile(r"\w+\s*\(\s*\)"),    # call with no arguments
    re.compile(r"\w+\s*=\s*.+"),     # assignment
    re.compile(r"if\s*\("),
    re.compile(r"for\s*\("),
    re.compile(r"while\s*\("),
    re.compile(r"return\s+"),
    re.compile(r"import\s+"),
    re.compile(r"require\s*\("),
    re.compile(r"include\s*\("),
]

ERROR_PATTERNS: List[Pattern[str]] = [
    re.compile(r"error[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"exception[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"warning[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"fatal[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"failed[:\s]+(.+)", re.IGNORECASE),
    re.compile(r"cannot\s+(.+)", re.IGNORECASE),
    re.compile(r"unable\s+to\s+(.+)", re.IGNORECASE),
    re.compile(r"undefined\s+(.+)", re.IGNORECASE),
    re.compile(r"null\s+(.+)", re.IGNORECASE),
]

TESTED_KEYWORDS = [
    "tested",
    "reproduced",
    "confirmed",
    "verified",
    "replicated",
    "able to reproduce",
    "can reproduce",
    "seeing the same",
]

REPRODUCIBLE_KEYWORDS = [
    "steps to reproduce",
    "how to reproduce",
    "reproduction steps",
    "always happens",
    "consistently",
    "every time",
]


def _unique(items: Iterable[str]) -> List[str]:
    """Drop exact duplicates, keeping first-appearance order."""
    return list(dict.fromkeys(items))


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def threads_of_type(threads: Sequence[Thread], thread_type: ThreadType) -> List[Thread]:
    return [thread for thread in threads if thread.type == thread_type]


def extract_issue_description(threads: Sequence[Thread]) -> str:
    """
    Primary problem statement from the first customer thread, followed by any
    substantial customer follow-ups, each under an "Additional context:" label.
    """
    customer_messages = threads_of_type(threads, ThreadType.CUSTOMER)
    if not customer_messages:
        return NO_CUSTOMER_MESSAGES

    description = strip_html(customer_messages[0].body)
    follow_ups = [strip_html(message.body) for message in customer_messages[1:]]
    sections = [description]
    sections.extend(
        f"{ADDITIONAL_CONTEXT_LABEL}\n{text}"
        for text in follow_ups
        if len(text) > MIN_FOLLOW_UP_LENGTH
    )
    return "\n\n".join(sections)


def looks_like_code(line: str, patterns: Optional[Sequence[Pattern[str]]] = None) -> bool:
    return any(pattern.search(line) for pattern in (patterns or CODE_LINE_PATTERNS))


def extract_code_snippets(threads: Sequence[Thread], patterns: Optional[Sequence[Pattern[str]]] = None) -> List[str]:
    snippets: List[str] = []

    for thread in threads:
        body = thread.body or ""

        for match in PRE_BLOCK_PATTERN.finditer(body):
            snippets.append(strip_html(match.group(0)))

        for match in INLINE_CODE_PATTERN.finditer(body):
            code = strip_html(match.group(0))
            if len(code) > MIN_INLINE_CODE_LENGTH:
                snippets.append(code)

        for line in strip_html(body).split("\n"):
            if looks_like_code(line, patterns):
                snippets.append(line.strip())

    return _unique(snippets)


def extract_error_messages(threads: Sequence[Thread], patterns: Optional[Sequence[Pattern[str]]] = None) -> List[str]:
    errors: List[str] = []

    for thread in threads:
        text = strip_html(thread.body)
        for pattern in patterns or ERROR_PATTERNS:
            for match in pattern.finditer(text):
                error = match.group(0).strip()
                if MIN_ERROR_LENGTH < len(error) < MAX_ERROR_LENGTH:
                    errors.append(error)

    return _unique(errors)


def check_tested_by_team(threads: Sequence[Thread], keywords: Optional[Sequence[str]] = None) -> bool:
    """True when an internal note says the team tested or reproduced the issue."""
    for note in threads_of_type(threads, ThreadType.NOTE):
        if _contains_any(strip_html(note.body).lower(), keywords or TESTED_KEYWORDS):
            return True
    return False


def check_reproducible(threads: Sequence[Thread], keywords: Optional[Sequence[str]] = None) -> bool:
    for thread in threads:
        if _contains_any(strip_html(thread.body).lower(), keywords or REPRODUCIBLE_KEYWORDS):
            return True
    return False


def extract_attachments(threads: Sequence[Thread]) -> List[str]:
    return [
        f"{attachment.file_name} ({attachment.mime_type})"
        for thread in threads
        for attachment in thread.attachments or []
    ]
