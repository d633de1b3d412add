"""Markdown link extraction and domain blocking."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List
from urllib.parse import urlparse

LOGGER = logging.getLogger(__name__)

MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")

DEFAULT_BLOCKED_DOMAINS = frozenset({"duckduckgo.com"})


@dataclass(slots=True, frozen=True)
class Link:
    url: str
    title: str


def is_blocked_domain(url: str, blocked_domains: Iterable[str] = DEFAULT_BLOCKED_DOMAINS) -> bool:
    """True for URLs on a blocked domain (or any subdomain of one) and for malformed URLs."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return True
    if not hostname:
        return True
    return any(hostname == domain or hostname.endswith("." + domain) for domain in blocked_domains)


def extract_links(
    markdown: str, blocked_domains: Iterable[str] = DEFAULT_BLOCKED_DOMAINS
) -> List[Link]:
    """Collect ``[title](http...)`` links, skipping blocked and non-http targets."""
    blocked = frozenset(blocked_domains)
    links: List[Link] = []
    for title, url in MARKDOWN_LINK_RE.findall(markdown or ""):
        if not url.startswith(("http://", "https://")):
            continue
        if is_blocked_domain(url, blocked):
            LOGGER.debug("Skipping blocked domain: %s", url)
            continue
        links.append(Link(url=url, title=title))
    return links


def page_title(url: str) -> str:
    """Last path segment of ``url``, or "index" for the site root."""
    segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return segment or "index"
