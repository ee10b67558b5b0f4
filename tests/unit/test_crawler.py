"""Unit tests for the web crawler — no network, the HTTP session is mocked."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from tenant_rag.errors import CrawlError
from tenant_rag.ingestion.crawler import (
    WebCrawler,
    is_same_domain,
    make_absolute_url,
    normalize_url,
    parse_page,
)


# ── Fake HTTP session ───────────────────────────────────────────────────


def _response(html: str, status: int = 200, content_type: str = "text/html; charset=utf-8") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = html
    response.headers = {"Content-Type": content_type}
    if status >= 400:
        error = requests.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


def _session(pages: dict[str, MagicMock]) -> MagicMock:
    session = MagicMock()

    def get(url: str, **kwargs: object) -> MagicMock:
        if url not in pages:
            return _response("", status=404)
        return pages[url]

    session.get.side_effect = get
    return session


def _html(title: str, body: str, links: list[str] | None = None) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in links or [])
    return f"<html><head><title>{title}</title></head><body>{body}{anchors}</body></html>"


def _crawler(session: MagicMock, **kwargs: object) -> WebCrawler:
    kwargs.setdefault("sleep", lambda _: None)
    return WebCrawler(session, **kwargs)  # type: ignore[arg-type]


# ── URL helpers ─────────────────────────────────────────────────────────


class TestUrlHelpers:
    def test_normalize_drops_fragment_and_trailing_slash(self) -> None:
        assert normalize_url("https://example.com/docs/#intro") == "https://example.com/docs"

    def test_normalize_keeps_query(self) -> None:
        assert normalize_url("https://example.com/search/?q=1") == "https://example.com/search?q=1"

    def test_make_absolute_resolves_relative_links(self) -> None:
        assert make_absolute_url("../faq", "https://example.com/docs/page") == "https://example.com/faq"

    @pytest.mark.parametrize("href", ["#top", "javascript:void(0)", "mailto:a@b.c", "tel:123", "", None])
    def test_make_absolute_skips_non_navigable(self, href: str | None) -> None:
        assert make_absolute_url(href, "https://example.com") is None

    def test_same_domain_includes_subdomains(self) -> None:
        assert is_same_domain("https://docs.example.com/a", "example.com")
        assert not is_same_domain("https://example.org/a", "example.com")


class TestParsePage:
    def test_extracts_title_headings_and_paragraphs(self) -> None:
        html = _html("Acme", "<nav>Menu</nav><h2>Pricing</h2><p>Plans   start\nat $5.</p><script>x()</script>")
        page = parse_page(html, "https://example.com")
        assert page.content == "# Acme\n\n## Pricing\n\nPlans start at $5."

    def test_collects_normalised_unique_links(self) -> None:
        html = _html("t", "<p>x</p>", ["/a/", "/a#frag", "https://other.org/", "mailto:x@y.z"])
        page = parse_page(html, "https://example.com/")
        assert page.links == ["https://example.com/a", "https://other.org"]


# ── Crawl ───────────────────────────────────────────────────────────────


class TestWebCrawler:
    def test_depth_one_fetches_only_the_start_page(self) -> None:
        session = _session({"https://example.com": _response(_html("Home", "<p>Welcome</p>", ["/about"]))})
        pages = _crawler(session).crawl("https://example.com/", crawl_depth=1)
        assert [p.url for p in pages] == ["https://example.com"]
        assert session.get.call_count == 1

    def test_follows_same_domain_links_up_to_depth(self) -> None:
        session = _session({
            "https://example.com": _response(_html("Home", "<p>Home</p>", ["/about", "https://other.org/x"])),
            "https://example.com/about": _response(_html("About", "<p>About</p>", ["/team"])),
            "https://example.com/team": _response(_html("Team", "<p>Team</p>")),
        })
        pages = _crawler(session).crawl("https://example.com", crawl_depth=2)
        assert [p.url for p in pages] == ["https://example.com", "https://example.com/about"]
        fetched = [c.args[0] for c in session.get.call_args_list]
        assert "https://other.org/x" not in fetched
        assert "https://example.com/team" not in fetched

    def test_each_url_is_fetched_once(self) -> None:
        session = _session({
            "https://example.com": _response(_html("Home", "<p>Home</p>", ["/a", "/b"])),
            "https://example.com/a": _response(_html("A", "<p>A</p>", ["/", "/b"])),
            "https://example.com/b": _response(_html("B", "<p>B</p>", ["/a"])),
        })
        _crawler(session).crawl("https://example.com", crawl_depth=3)
        fetched = [c.args[0] for c in session.get.call_args_list]
        assert sorted(fetched) == ["https://example.com", "https://example.com/a", "https://example.com/b"]

    def test_sleeps_between_batches_only(self) -> None:
        links = [f"/p{i}" for i in range(4)]
        pages = {"https://example.com": _response(_html("Home", "<p>Home</p>", links))}
        pages.update({f"https://example.com/p{i}": _response(_html("P", f"<p>{i}</p>")) for i in range(4)})
        sleeps: list[float] = []
        crawler = _crawler(_session(pages), batch_size=2, batch_delay=0.5, sleep=sleeps.append)
        result = crawler.crawl("https://example.com", crawl_depth=2)
        assert len(result) == 5
        # level 1: one batch, level 2: two batches
        assert sleeps == [0.5]

    def test_failed_child_pages_are_skipped(self) -> None:
        session = _session({
            "https://example.com": _response(_html("Home", "<p>Home</p>", ["/broken", "/file.pdf"])),
            "https://example.com/file.pdf": _response("%PDF", content_type="application/pdf"),
        })
        pages = _crawler(session).crawl("https://example.com", crawl_depth=2)
        assert [p.url for p in pages] == ["https://example.com"]

    def test_unreachable_start_page_raises(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(CrawlError) as exc_info:
            _crawler(session).crawl("https://example.com")
        assert exc_info.value.transient is True

    def test_start_page_404_is_not_transient(self) -> None:
        with pytest.raises(CrawlError) as exc_info:
            _crawler(_session({})).crawl("https://example.com")
        assert exc_info.value.transient is False

    def test_no_content_raises(self) -> None:
        session = _session({"https://example.com": _response("<html><body><script>x</script></body></html>")})
        with pytest.raises(CrawlError, match="No content"):
            _crawler(session).crawl("https://example.com")

    def test_invalid_url_raises(self) -> None:
        with pytest.raises(CrawlError, match="Invalid URL"):
            _crawler(MagicMock()).crawl("not a url")

    def test_sends_crawler_headers(self) -> None:
        session = _session({"https://example.com": _response(_html("Home", "<p>Hi</p>"))})
        _crawler(session, user_agent="TestBot/1.0", timeout=3).crawl("https://example.com")
        kwargs = session.get.call_args.kwargs
        assert kwargs["headers"]["User-Agent"] == "TestBot/1.0"
        assert kwargs["timeout"] == 3
