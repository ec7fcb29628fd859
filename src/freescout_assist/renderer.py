"""
Markdown-to-HTML rendering for replies and notes stored as FreeScout rich text.

Supports a small Markdown subset (bold, italic, inline code, ordered and
unordered lists, paragraphs) and always finishes with an allowlist sanitizer,
so the result is safe to store in a thread body. Raw HTML in the input passes
through the sanitizer instead of being escaped.
"""

import logging
import re
from enum import Enum
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

ORDERED_ITEM_PATTERN = re.compile(r"^\d+\.\s+")
UNORDERED_ITEM_PATTERN = re.compile(r"^[-*]\s+")
HTML_BLOCK_PATTERN = re.compile(r"^<(p|div|ul|ol|pre|blockquote|table|h[1-6]|hr)\b", re.IGNORECASE)

BOLD_PATTERNS = (
    re.compile(r"\*\*(.+?)\*\*"),
    re.compile(r"__(.+?)__"),
)
ITALIC_PATTERNS = (
    re.compile(r"(?<!\*)\*([^*]+)\*(?!\*)"),
    re.compile(r"(?<![\w_])_([^_]+)_(?![\w_])"),
)

ALLOWED_TAGS = {
    "a", "b", "blockquote", "br", "code", "div", "em", "h1", "h2", "h3", "h4", "h5", "h6",
    "hr", "i", "img", "li", "ol", "p", "pre", "s", "span", "strong", "sub", "sup",
    "table", "tbody", "td", "th", "thead", "tr", "u", "ul",
}
ALLOWED_ATTRIBUTES = {
    "a": {"href", "title", "target", "rel"},
    "img": {"src", "alt", "title", "width", "height"},
    "ol": {"start"},
    "td": {"colspan", "rowspan"},
    "th": {"colspan", "rowspan"},
}
# Dropped together with everything inside them.
REMOVED_TAGS = [
    "applet", "base", "button", "embed", "form", "frame", "frameset", "iframe", "input",
    "link", "math", "meta", "noscript", "object", "script", "select", "style", "svg",
    "template", "textarea",
]
URL_ATTRIBUTES = {"href", "src"}
UNSAFE_URL_SCHEMES = ("javascript:", "vbscript:", "data:")


class BlockState(Enum):
    NONE = "none"
    PARAGRAPH = "paragraph"
    ORDERED_LIST = "ordered_list"
    UNORDERED_LIST = "unordered_list"
    HTML_BLOCK = "html_block"


LIST_TAGS = {
    BlockState.ORDERED_LIST: "ol",
    BlockState.UNORDERED_LIST: "ul",
}


def is_list_item(line: str) -> bool:
    return bool(ORDERED_ITEM_PATTERN.match(line) or UNORDERED_ITEM_PATTERN.match(line))


def _emphasize(text: str) -> str:
    for pattern in BOLD_PATTERNS:
        text = pattern.sub(r"<strong>\1</strong>", text)
    for pattern in ITALIC_PATTERNS:
        text = pattern.sub(r"<em>\1</em>", text)
    return text


def format_inline(text: str) -> str:
    """Apply code spans first, then bold and italic outside of them."""
    pieces = text.split("`")
    if len(pieces) % 2 == 0:
        # Unmatched trailing backtick stays literal.
        pieces[-2:] = [pieces[-2] + "`" + pieces[-1]]
    return "".join(
        f"<code>{piece}</code>" if index % 2 else _emphasize(piece)
        for index, piece in enumerate(pieces)
    )


class MarkdownBlockBuilder:
    """
    Line-driven state machine producing block-level HTML.

    One builder renders one document; ``markdown_to_html`` creates a fresh
    builder per call so rendering shares no state between callers.

    Transitions:
      blank line      -> stays in a list when the next non-blank line is a list
                         item of either kind, otherwise closes the block (NONE)
      list item       -> flushes a paragraph, swaps list kind if needed
      raw HTML block  -> closes the block and opens an HTML block; following
                         lines up to the next blank line join it verbatim
      other text      -> closes a list, joins the paragraph with <br>
    """

    def __init__(self) -> None:
        self.state = BlockState.NONE
        self.blocks: List[str] = []
        self.paragraph: List[str] = []
        self.html_lines: List[str] = []

    def render(self, text: str) -> str:
        lines = text.split("\n")
        for index, line in enumerate(lines):
            stripped = line.strip()
            if not stripped:
                self._on_blank(lines, index)
            elif self.state == BlockState.HTML_BLOCK:
                self.html_lines.append(stripped)
            elif ORDERED_ITEM_PATTERN.match(stripped):
                self._on_list_item(BlockState.ORDERED_LIST, ORDERED_ITEM_PATTERN.sub("", stripped, count=1))
            elif UNORDERED_ITEM_PATTERN.match(stripped):
                self._on_list_item(BlockState.UNORDERED_LIST, UNORDERED_ITEM_PATTERN.sub("", stripped, count=1))
            elif HTML_BLOCK_PATTERN.match(stripped):
                self._close_block()
                self.html_lines.append(stripped)
                self.state = BlockState.HTML_BLOCK
            else:
                self._on_text(stripped)
        self._close_block()
        return "\n\n".join(self.blocks)

    @staticmethod
    def _next_non_blank(lines: Sequence[str], index: int) -> Optional[str]:
        for line in lines[index + 1:]:
            if line.strip():
                return line.strip()
        return None

    def _on_blank(self, lines: Sequence[str], index: int) -> None:
        if self.state in LIST_TAGS:
            upcoming = self._next_non_blank(lines, index)
            if upcoming is not None and is_list_item(upcoming):
                return
        self._close_block()

    def _on_list_item(self, kind: BlockState, content: str) -> None:
        if self.state != kind:
            self._close_block()
            self.blocks.append(f"<{LIST_TAGS[kind]}>")
            self.state = kind
        self.blocks.append(f"<li>{format_inline(content)}</li>")

    def _on_text(self, line: str) -> None:
        if self.state in LIST_TAGS:
            self._close_block()
        self.paragraph.append(format_inline(line))
        self.state = BlockState.PARAGRAPH

    def _close_block(self) -> None:
        if self.state == BlockState.PARAGRAPH and self.paragraph:
            self.blocks.append(f"<p>{'<br>'.join(self.paragraph)}</p>")
        elif self.state in LIST_TAGS:
            self.blocks.append(f"</{LIST_TAGS[self.state]}>")
        elif self.state == BlockState.HTML_BLOCK and self.html_lines:
            self.blocks.append("\n".join(self.html_lines))
        self.paragraph = []
        self.html_lines = []
        self.state = BlockState.NONE


def _is_unsafe_url(value: str) -> bool:
    compact = re.sub(r"[\s\x00-\x1f]", "", value).lower()
    return compact.startswith(UNSAFE_URL_SCHEMES)


def sanitize_html(html: str) -> str:
    """
    Allowlist sanitizer. Active content is removed with its children, unknown
    tags are unwrapped, and only a few attributes survive (never ``on*`` or
    ``style``). Stable under repeated application.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()

    for tag in soup.find_all(REMOVED_TAGS):
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        allowed = ALLOWED_ATTRIBUTES.get(tag.name, set())
        for attribute in list(tag.attrs):
            value = tag.attrs[attribute]
            if attribute not in allowed:
                del tag.attrs[attribute]
            elif attribute in URL_ATTRIBUTES and isinstance(value, str) and _is_unsafe_url(value):
                del tag.attrs[attribute]

    return str(soup)


def markdown_to_html(text: Optional[str]) -> str:
    """Render a Markdown reply to sanitized HTML. Empty input gives ``""``."""
    if not text:
        return ""
    html = MarkdownBlockBuilder().render(text)
    sanitized = sanitize_html(html).strip()
    logger.debug(f"Rendered {len(text)} chars of Markdown to {len(sanitized)} chars of HTML")
    return sanitized
