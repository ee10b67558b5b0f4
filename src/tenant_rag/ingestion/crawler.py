"""Bounded-depth, same-domain web crawler.

The crawl is breadth-first: level *n* holds the pages discovered on level
*n − 1*.  Each level is fetched in concurrent batches (``batch_size``
requests at a time) with a pause between batches, and every URL is fetched
at most once per crawl.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from tenant_rag.config import settings
from tenant_rag.errors import CrawlError, is_transient
from tenant_rag.ingestion.models import RawPage

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = [
    "script", "style", "meta", "link", "noscript", "iframe",
    "svg", "path", "header", "footer", "nav",
]
TEXT_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "td", "th", "dd", "dt"]
_SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:")


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    """Drop the fragment and a trailing slash; keep the query string."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    normalized = f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")
    if parsed.query:
        normalized += f"?{parsed.query}"
    return normalized


def make_absolute_url(href: str | None, current_url: str) -> str | None:
    """Resolve *href* against *current_url*; ``None`` for non-navigable links."""
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(_SKIPPED_HREF_PREFIXES):
        return None
    absolute = urljoin(current_url, href.split("#", 1)[0])
    return absolute if is_valid_url(absolute) else None


def is_same_domain(url: str, domain: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith(f".{domain}")


# ---------------------------------------------------------------------------
# Page parsing
# ---------------------------------------------------------------------------


@dataclass
class ParsedPage:
    """Readable text and outbound links of one HTML page."""

    content: str
    links: list[str] = field(default_factory=list)


def parse_page(html: str, page_url: str) -> ParsedPage:
    """Extract headings / paragraphs as markdown-ish text and collect links."""
    soup = BeautifulSoup(html, "html.parser")

    links: list[str] = []
    for anchor in soup.find_all("a"):
        absolute = make_absolute_url(anchor.get("href"), page_url)
        if absolute:
            links.append(normalize_url(absolute))

    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()

    parts: list[str] = []
    if title:
        parts.append(f"# {title}")
    for elem in soup.find_all(TEXT_TAGS):
        text = " ".join(elem.get_text(" ").split())
        if not text:
            continue
        if elem.name.startswith("h"):
            parts.append(f"{'#' * int(elem.name[1])} {text}")
        else:
            parts.append(text)

    return ParsedPage(content="\n\n".join(parts), links=list(dict.fromkeys(links)))


# ---------------------------------------------------------------------------
# Crawler
# ---------------------------------------------------------------------------


class WebCrawler:
    """Crawl a website breadth-first up to a fixed number of levels.

    Parameters
    ----------
    session:
        HTTP session used for every fetch (injectable for tests).
    batch_size:
        Number of pages fetched concurrently.
    batch_delay:
        Seconds to pause between consecutive batches.
    timeout:
        Per-request timeout in seconds.
    user_agent:
        ``User-Agent`` header sent with every request.
    sleep:
        Delay function; tests pass a no-op.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        batch_size: int = settings.crawl_batch_size,
        batch_delay: float = settings.crawl_batch_delay,
        timeout: float = settings.crawl_request_timeout,
        user_agent: str = settings.crawl_user_agent,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.timeout = timeout
        self.user_agent = user_agent
        self._sleep = sleep

    def crawl(self, url: str, crawl_depth: int = 1) -> list[RawPage]:
        """Crawl *url* and return the pages with readable content.

        Raises
        ------
        CrawlError
            When the URL is invalid, the start page cannot be fetched, or
            no page yielded any content.
        """
        if not is_valid_url(url):
            raise CrawlError(f"Invalid URL: {url}")

        root = normalize_url(url)
        domain = urlparse(root).hostname or ""
        visited: set[str] = set()
        pages: list[RawPage] = []
        frontier = [root]

        logger.info("Starting crawl of %s with depth %d", root, crawl_depth)
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for depth in range(crawl_depth):
                discovered: list[str] = []
                level = [u for u in frontier if u not in visited]
                for start in range(0, len(level), self.batch_size):
                    batch = level[start : start + self.batch_size]
                    visited.update(batch)
                    results = pool.map(lambda u: self._fetch(u, strict=u == root), batch)
                    for page_url, parsed in zip(batch, results):
                        if parsed is None:
                            continue
                        if parsed.content.strip():
                            pages.append(RawPage(url=page_url, content=parsed.content))
                        if depth < crawl_depth - 1:
                            discovered.extend(
                                link
                                for link in parsed.links
                                if link not in visited and is_same_domain(link, domain)
                            )
                    if start + self.batch_size < len(level):
                        self._sleep(self.batch_delay)

                frontier = list(dict.fromkeys(discovered))
                logger.debug("Depth %d done, %d new URL(s) queued", depth + 1, len(frontier))
                if not frontier:
                    break

        if not pages:
            raise CrawlError(f"No content could be crawled from {root}")
        logger.info("Crawl of %s completed: %d page(s)", root, len(pages))
        return pages

    # -- internals ------------------------------------------------------------

    def _fetch(self, url: str, *, strict: bool = False) -> ParsedPage | None:
        """Fetch and parse one page; ``None`` when it is skipped.

        With ``strict`` the failure is raised as :class:`CrawlError`
        (transient when the cause is) instead of being logged and skipped.
        """
        try:
            response = self._session.get(
                url,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "text/html",
                    "Accept-Language": "en-US,en;q=0.9",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            if strict:
                raise CrawlError(
                    f"Failed to fetch {url}: {exc}", transient=is_transient(exc)
                ) from exc
            logger.warning("Error crawling %s: %s", url, exc)
            return None

        content_type = response.headers.get("Content-Type", "")
        if "text/html" not in content_type:
            logger.warning("Skipping non-HTML content type %r for %s", content_type, url)
            return None
        return parse_page(response.text, url)
