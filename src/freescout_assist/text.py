"""HTML-to-text normalization used by every ticket heuristic."""

import re
from typing import Optional

TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Ampersand must stay last so "&amp;lt;" decodes once to "&lt;", not to "<".
ENTITY_REPLACEMENTS = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


def strip_html(html: Optional[str]) -> str:
    """
    Remove tags, decode the basic entities and collapse whitespace.

    Entities are decoded after tags are removed, so escaped markup survives one
    pass: ``"&lt;b&gt;x"`` gives ``"<b>x"`` and a second pass gives ``"x"``.
    Repeated application is stable only for input without escaped tags.
    """
    if not html:
        return ""

    text = TAG_PATTERN.sub(" ", html)
    for entity, replacement in ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix
