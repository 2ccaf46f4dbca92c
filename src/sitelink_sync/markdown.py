"""
Markdown helpers for chat status messages.

Status lines are delivered to a Discord-compatible webhook, which renders
a subset of Markdown.  Titles and user names are escaped so characters
like ``*`` or ``[`` in a page title cannot break the formatting.
"""

from typing import Protocol

_SPECIAL_CHARS = frozenset("|*#{}[]()\\")


class ArticleUrlBuilder(Protocol):
    def make_article_url(self, title: str) -> str: ...


def escape(text: str) -> str:
    """Backslash-escape characters that are significant in chat Markdown."""
    return "".join("\\" + ch if ch in _SPECIAL_CHARS else ch for ch in text)


def make_link(text: str, url: str) -> str:
    """
    Render a Markdown link.

    The URL is wrapped in angle brackets so that parentheses in page
    titles do not terminate it early.
    """
    return f"[{escape(text)}](<{url}>)"


def article_link(site: ArticleUrlBuilder, title: str) -> str:
    """Link to *title* on *site*."""
    return make_link(title, site.make_article_url(title))


def user_link(site: ArticleUrlBuilder, user_name: str) -> str:
    """
    Link to a user page, followed by talk (T) and contributions (C) links.

    Example:
        ``[Alice](<.../User:Alice>) ([T](<.../User_talk:Alice>)|[C](<...>))``
    """
    if not user_name:
        return "(hidden user)"
    user_page = make_link(user_name, site.make_article_url("User:" + user_name))
    talk = make_link("T", site.make_article_url("User talk:" + user_name))
    contribs = make_link(
        "C", site.make_article_url("Special:Contributions/" + user_name)
    )
    return f"{user_page} ({talk}|{contribs})"
