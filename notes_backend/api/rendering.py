"""
Markdown preview rendering.

`markdown_to_html` is a fixed, ordered sequence of regex substitutions. It is
not idempotent: a `*` left inside markup produced by an earlier pass can be
matched again by a later one. Its output is never trusted; `render_markdown`
always runs it through the allowlist sanitizer before it reaches a page.
"""
import html
import re
from html.parser import HTMLParser

_SUBSTITUTIONS = (
    (re.compile(r"^### (.*)$", re.MULTILINE), r"<h3>\1</h3>"),
    (re.compile(r"^## (.*)$", re.MULTILINE), r"<h2>\1</h2>"),
    (re.compile(r"^# (.*)$", re.MULTILINE), r"<h1>\1</h1>"),
    (re.compile(r"\*\*(.*?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.*?)\*"), r"<em>\1</em>"),
    (re.compile(r"^- (.*)$", re.MULTILINE), r"<li>\1</li>"),
    (re.compile(r"(<li>.*</li>)"), r"<ul>\1</ul>"),
    (re.compile(r"`(.*?)`"), r"<code>\1</code>"),
    (re.compile(r"\n"), "<br>"),
)

ALLOWED_TAGS = {"h1", "h2", "h3", "strong", "em", "ul", "li", "code", "br"}
VOID_TAGS = {"br"}


# PUBLIC_INTERFACE
def markdown_to_html(text: str) -> str:
    """Raw, unsanitized markup for text. Do not display without sanitize_html."""
    formatted = text or ""
    for pattern, replacement in _SUBSTITUTIONS:
        formatted = pattern.sub(replacement, formatted)
    return formatted


class AllowlistParser(HTMLParser):
    """
    Re-emits allowed tags without attributes. Anything else, including
    `<word ...>` runs in ordinary prose, is kept as escaped text.
    """

    def __init__(self):
        super().__init__()
        self.result = []
        self.open_tags = []

    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag not in ALLOWED_TAGS:
            self.result.append(html.escape(self.get_starttag_text() or "", quote=False))
            return
        self.result.append(f"<{tag}>")
        if tag not in VOID_TAGS:
            self.open_tags.append(tag)

    def handle_endtag(self, tag):
        tag = tag.lower()
        if tag in VOID_TAGS:
            return
        if tag not in ALLOWED_TAGS or tag not in self.open_tags:
            self.result.append(html.escape(f"</{tag}>", quote=False))
            return
        # close anything left open inside this element
        while self.open_tags:
            opened = self.open_tags.pop()
            self.result.append(f"</{opened}>")
            if opened == tag:
                break

    def handle_startendtag(self, tag, attrs):
        self.handle_starttag(tag, attrs)
        if tag.lower() in ALLOWED_TAGS and tag.lower() not in VOID_TAGS:
            self.handle_endtag(tag)

    def handle_data(self, data):
        self.result.append(html.escape(data, quote=False))

    def close_open_tags(self):
        while self.open_tags:
            self.result.append(f"</{self.open_tags.pop()}>")


# PUBLIC_INTERFACE
def sanitize_html(markup: str) -> str:
    """Keep ALLOWED_TAGS without attributes; everything else becomes escaped text."""
    if not markup:
        return ""
    parser = AllowlistParser()
    parser.feed(markup)
    parser.close()
    parser.close_open_tags()
    return "".join(parser.result)


# PUBLIC_INTERFACE
def render_markdown(text: str) -> str:
    """Markdown source to display-safe HTML."""
    return sanitize_html(markdown_to_html(text))
