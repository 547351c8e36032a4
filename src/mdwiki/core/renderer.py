"""Markdown renderer with sanitization and wiki link support."""

import html
import re
from typing import Callable
from urllib.parse import quote
from xml.etree.ElementTree import Element

import nh3
from markdown import Markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor, SimpleTagInlineProcessor


# Pattern for wiki links: [[PageName]] or [[PageName|Display Text]]
WIKI_LINK_PATTERN = r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]"

# Pattern for strikethrough: ~~text~~
# Group 2 must contain the text (SimpleTagInlineProcessor expectation)
STRIKETHROUGH_PATTERN = r"(~~)(.*?)~~"

# Markup the converter emits on top of the sanitizer's default allow-list.
RENDERED_TAGS = nh3.ALLOWED_TAGS | {"input"}
RENDERED_ATTRIBUTES = {tag: set(attrs) for tag, attrs in nh3.ALLOWED_ATTRIBUTES.items()}
RENDERED_ATTRIBUTES.setdefault("*", set()).update({"class", "id", "lang", "title"})
RENDERED_ATTRIBUTES.setdefault("input", set()).update({"type", "checked", "disabled"})


# Spans the sanitizer would misread as HTML: fenced blocks, code spans and
# <scheme://...> autolinks. Fences are matched first so their backticks are
# not taken for code spans.
FENCE_PATTERN = re.compile(r"^(`{3,}|~{3,})[^\n]*\n.*?^\1[ \t]*$", re.MULTILINE | re.DOTALL)
CODE_SPAN_PATTERN = re.compile(r"(?<!`)(`+)(?!`).+?(?<!`)\1(?!`)", re.DOTALL)
AUTOLINK_PATTERN = re.compile(r"<(?:https?|ftp)://[^\s<>]+>")

# Private-use characters pass through the sanitizer and the converter untouched.
STASH_PATTERN = re.compile("(\\d+)")


def sanitize_markdown(text: str) -> str:
    """Strip unsafe HTML from user-supplied markdown.

    Removes script and style elements with their content, event handler
    attributes and links with non-allowlisted URL schemes. Markdown syntax,
    code and autolinks pass through untouched; the converter escapes code
    itself and its output is sanitized again.
    """
    stash: list[str] = []

    def put_aside(m: re.Match) -> str:
        stash.append(m.group(0))
        return f"{len(stash) - 1}"

    for pattern in (FENCE_PATTERN, CODE_SPAN_PATTERN, AUTOLINK_PATTERN):
        text = pattern.sub(put_aside, text)

    def restore(s: str, limit: int) -> str:
        # An entry only ever contains placeholders for earlier entries.
        def expand(m: re.Match) -> str:
            index = int(m.group(1))
            if index >= limit:
                return m.group(0)
            return restore(stash[index], index)

        return STASH_PATTERN.sub(expand, s)

    # The serializer escapes "<", ">" and "&" in text; markdown wants them raw.
    cleaned = html.unescape(nh3.clean(text))
    return restore(cleaned, len(stash))


def sanitize_html(html: str) -> str:
    """Apply the sanitizing policy to converter output."""
    return nh3.clean(html, tags=RENDERED_TAGS, attributes=RENDERED_ATTRIBUTES)


class StrikethroughExtension(Extension):
    """Markdown extension for ~~strikethrough~~ text."""

    def extendMarkdown(self, md: Markdown) -> None:
        """Add strikethrough pattern to markdown parser."""
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(STRIKETHROUGH_PATTERN, "del"),
            "strikethrough",
            50,
        )


class WikiLinkInlineProcessor(InlineProcessor):
    """Inline processor for wiki links."""

    def __init__(self, pattern: str, md: Markdown, page_exists: Callable[[str], bool]):
        super().__init__(pattern, md)
        self.page_exists = page_exists

    def handleMatch(self, m: re.Match, data: str) -> tuple[Element | None, int, int]:
        """Convert wiki link match to HTML anchor element."""
        title = m.group(1).strip()
        display_text = m.group(2)
        if display_text:
            display_text = display_text.strip()
        else:
            display_text = title

        el = Element("a")
        el.text = display_text
        el.set("href", f"/view/{quote(title)}")

        if self.page_exists(title):
            el.set("class", "wiki-link")
        else:
            el.set("class", "wiki-link wiki-link-missing")

        return el, m.start(0), m.end(0)


class WikiLinkExtension(Extension):
    """Markdown extension for wiki links."""

    def __init__(self, page_exists: Callable[[str], bool] | None = None, **kwargs):
        self.page_exists = page_exists or (lambda x: True)
        super().__init__(**kwargs)

    def extendMarkdown(self, md: Markdown) -> None:
        """Add wiki link pattern to markdown parser."""
        wiki_link_processor = WikiLinkInlineProcessor(
            WIKI_LINK_PATTERN,
            md,
            self.page_exists,
        )
        md.inlinePatterns.register(wiki_link_processor, "wiki_link", 75)


def create_parser(page_exists: Callable[[str], bool] | None = None) -> Markdown:
    """Create a Markdown parser with wiki link support.

    Args:
        page_exists: Callback to check if a page exists.
                    Used to style missing page links differently.

    Returns:
        Configured Markdown parser instance.
    """
    return Markdown(
        extensions=[
            # Core formatting
            "extra",  # Includes: abbreviations, attr_list, def_list, fenced_code, footnotes, md_in_html, tables
            "sane_lists",
            "smarty",  # Smart quotes and dashes
            # PyMdown extensions
            "pymdownx.tasklist",
            # Custom extensions
            StrikethroughExtension(),
            WikiLinkExtension(page_exists=page_exists),
        ]
    )


class Renderer:
    """Converts stored markdown into sanitized HTML.

    Rendering is deterministic for a given ``page_exists`` callback: the same
    input bytes always produce the same output bytes.
    """

    def __init__(self, page_exists: Callable[[str], bool] | None = None):
        self.page_exists = page_exists

    def render_text(self, text: str) -> str:
        """Sanitize markdown text, convert it, and sanitize the result."""
        parser = create_parser(self.page_exists)
        html = parser.convert(sanitize_markdown(text))
        return sanitize_html(html)

    def render(self, markdown: bytes) -> bytes:
        """Render markdown bytes to UTF-8 encoded HTML."""
        text = markdown.decode("utf-8", errors="replace")
        return self.render_text(text).encode("utf-8")
