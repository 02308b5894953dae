import logging

import pytest
import requests

from section_crawler.core import CrawlError, crawl, normalize_url, is_allowed
from section_crawler.sections import SectionMatcher, SectionRegistry

from fakes import FakeResponse, FakeSession, html

DOMAINS = ("example.com", "www.example.com")
SEED = "https://example.com/"


def _crawl(session, **kwargs):
    kwargs.setdefault("allowed_domains", DOMAINS)
    kwargs.setdefault("workers", 4)
    return crawl("https://example.com", session=session, **kwargs)


def test_normalize_url_joins_and_strips_fragment():
    assert normalize_url("/a#top", "https://Example.com:443/x") == "https://example.com/a"
    assert normalize_url("b?q=1", "https://example.com/dir/") == "https://example.com/dir/b?q=1"
    assert normalize_url("mailto:hi@example.com", SEED) is None
    assert normalize_url("/logo.png", SEED) is None
    assert normalize_url("", SEED) is None


def test_normalize_url_rejects_malformed_href():
    with pytest.raises(ValueError):
        normalize_url("http://[::1", SEED)


def test_is_allowed_accepts_www_variant_only():
    assert is_allowed("https://www.example.com/a", DOMAINS)
    assert is_allowed("https://example.com/a", DOMAINS)
    assert not is_allowed("https://external.example.com/page", DOMAINS)


def test_crawl_counts_sections_across_pages():
    session = FakeSession({
        SEED: html('<a href="/a">A</a><a href="/b">B</a>'),
        "https://example.com/a": html('<div class="hero-banner">hi</div>'),
        "https://example.com/b": html('<footer data-section="footer">bye</footer>'),
    })
    registry = SectionRegistry(["hero", "footer"])
    matcher = SectionMatcher(registry)

    stats = _crawl(session, on_page=matcher.process_page)

    assert stats.pages_crawled == 3
    hero = registry.get("hero")
    footer = registry.get("footer")
    assert (hero.count, hero.unused) == (1, False)
    assert (footer.count, footer.unused) == (1, False)
    for section in registry.snapshot():
        assert section.unused == (section.count == 0)


def test_external_links_are_never_fetched():
    session = FakeSession({
        SEED: html(
            '<a href="https://external.example.com/page">ext</a>'
            '<a href="https://www.example.com/www">www</a>'
        ),
        "https://www.example.com/www": html('<a href="https://external.example.com/page">ext</a>'),
        "https://external.example.com/page": html('<div class="hero"></div>'),
    })
    registry = SectionRegistry(["hero"])

    stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert "https://external.example.com/page" not in session.requested
    assert "https://www.example.com/www" in session.requested
    assert stats.links_external == 2
    assert registry.get("hero").count == 0


def test_pages_beyond_max_depth_are_never_fetched():
    session = FakeSession({
        SEED: html('<a href="/d2">next</a>'),
        "https://example.com/d2": html('<a href="/d3">next</a>'),
        "https://example.com/d3": html('<a href="/d4">next</a>'),
        "https://example.com/d4": html("deep"),
    })

    stats = _crawl(session, max_depth=3)

    assert session.requested == [SEED, "https://example.com/d2", "https://example.com/d3"]
    assert stats.max_depth_reached == 3


def test_page_reached_at_its_shortest_depth():
    # /deep is linked from the seed and again from /a; its child must still be in range
    session = FakeSession({
        SEED: html('<a href="/a">a</a><a href="/deep">deep</a>'),
        "https://example.com/a": html('<a href="/deep">deep</a>'),
        "https://example.com/deep": html('<a href="/child">child</a>'),
        "https://example.com/child": html("leaf"),
    })

    _crawl(session, max_depth=3)

    assert session.requested.count("https://example.com/deep") == 1
    assert "https://example.com/child" in session.requested


def test_shared_link_fetched_once_under_concurrency():
    pages = {SEED: html("".join(f'<a href="/p{i}">p</a>' for i in range(20)))}
    for i in range(20):
        pages[f"https://example.com/p{i}"] = html('<a href="/shared">s</a><a href="/">home</a>')
    pages["https://example.com/shared"] = html("shared")
    session = FakeSession(pages)

    _crawl(session, workers=8)

    assert session.requested.count("https://example.com/shared") == 1
    assert session.requested.count(SEED) == 1
    assert len(session.requested) == len(set(session.requested))


def test_on_element_and_on_link_hooks_are_called():
    session = FakeSession({
        SEED: html('<a href="/a">A</a>'),
        "https://example.com/a": html("<p>x</p>"),
    })
    tags = []
    links = []

    _crawl(session, on_element=lambda el, url: tags.append((el.name, url)), on_link=lambda u, d: links.append((u, d)))

    assert ("p", "https://example.com/a") in tags
    assert ("a", SEED) in tags
    assert links == [("https://example.com/a", 2)]


def test_seed_failure_is_fatal():
    session = FakeSession(errors={SEED: requests.ConnectionError("refused")})

    with pytest.raises(CrawlError):
        _crawl(session)


def test_seed_http_error_is_fatal():
    session = FakeSession({SEED: FakeResponse(SEED, status_code=500)})

    with pytest.raises(CrawlError):
        _crawl(session)


def test_seed_outside_allowed_domains_is_rejected_before_fetch():
    session = FakeSession()

    with pytest.raises(CrawlError):
        crawl("https://other.test", allowed_domains=DOMAINS, session=session)
    assert session.requested == []


def test_failed_page_is_logged_and_crawl_continues(caplog):
    session = FakeSession(
        {
            SEED: html('<a href="/broken">x</a><a href="/missing">y</a><a href="/ok">z</a>'),
            "https://example.com/ok": html('<div class="hero"></div>'),
        },
        errors={"https://example.com/broken": requests.Timeout("timed out")},
    )
    registry = SectionRegistry(["hero"])

    with caplog.at_level(logging.WARNING, logger="section_crawler.core"):
        stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert stats.pages_failed == 2
    assert registry.get("hero").count == 1
    assert "https://example.com/broken" in caplog.text
    assert "HTTP 404" in caplog.text


def test_offsite_redirect_counts_as_failed_visit():
    session = FakeSession(
        {
            SEED: html('<a href="/go">go</a>'),
            "https://elsewhere.test/landing": html('<div class="hero"></div>'),
        },
        redirects={"https://example.com/go": "https://elsewhere.test/landing"},
    )
    registry = SectionRegistry(["hero"])

    stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert stats.pages_failed == 1
    assert registry.get("hero").count == 0


def test_malformed_links_are_skipped_and_counted(caplog):
    session = FakeSession({SEED: html('<a href="http://[::1">bad</a>')})

    with caplog.at_level(logging.DEBUG, logger="section_crawler.core"):
        stats = _crawl(session)

    assert stats.links_malformed == 1
    assert "malformed" in caplog.text


def test_non_html_responses_are_not_parsed():
    session = FakeSession({
        SEED: html('<a href="/feed">feed</a>'),
        "https://example.com/feed": FakeResponse(
            "https://example.com/feed", text='<div class="hero"></div>', content_type="application/json"
        ),
    })
    registry = SectionRegistry(["hero"])

    stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert stats.pages_not_html == 1
    assert registry.get("hero").count == 0


def test_max_pages_truncates_crawl():
    session = FakeSession({
        SEED: html("".join(f'<a href="/p{i}">p</a>' for i in range(5))),
        **{f"https://example.com/p{i}": html("x") for i in range(5)},
    })

    stats = _crawl(session, max_pages=3)

    assert len(session.requested) == 3
    assert stats.truncated is True


def test_redirect_to_already_scheduled_page_is_counted_once():
    session = FakeSession(
        {
            SEED: html('<a href="/old">old</a><a href="/new">new</a>'),
            "https://example.com/new": html('<div class="hero"></div>'),
        },
        redirects={"https://example.com/old": "https://example.com/new"},
    )
    registry = SectionRegistry(["hero"])

    stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert registry.get("hero").count == 1
    assert stats.pages_duplicate == 1
    assert stats.pages_crawled == 2


def test_seed_redirect_to_www_marks_final_page_visited():
    session = FakeSession(
        {"https://www.example.com/": html('<div class="hero"></div><a href="https://www.example.com/">home</a>')},
        redirects={SEED: "https://www.example.com/"},
    )
    registry = SectionRegistry(["hero"])

    stats = _crawl(session, on_page=SectionMatcher(registry).process_page)

    assert registry.get("hero").count == 1
    assert session.requested == [SEED]
    assert stats.pages_crawled == 1


def test_links_beyond_max_depth_are_counted_not_fetched():
    session = FakeSession({
        SEED: html('<a href="/a">a</a>'),
        "https://example.com/a": html('<a href="/b">b</a><a href="/">home</a>'),
        "https://example.com/b": html("too deep"),
    })

    stats = _crawl(session, max_depth=2)

    assert "https://example.com/b" not in session.requested
    assert stats.links_too_deep == 1


def test_is_allowed_requires_matching_port():
    assert not is_allowed("https://example.com:8443/admin", DOMAINS)
    assert is_allowed("https://example.com:443/a", DOMAINS)
    assert is_allowed("http://localhost:8000/a", ("localhost:8000",))
    assert not is_allowed("http://localhost:9000/a", ("localhost:8000",))
    assert not is_allowed("http://localhost/a", ("localhost:8000",))


def test_links_to_other_ports_are_not_followed():
    session = FakeSession({
        "http://localhost:8000/": html('<a href="/next">n</a><a href="http://localhost:9000/x">x</a>'),
        "http://localhost:8000/next": html("ok"),
        "http://localhost:9000/x": html("other service"),
    })

    stats = crawl(
        "http://localhost:8000",
        allowed_domains=("localhost:8000", "www.localhost:8000"),
        session=session,
    )

    assert session.requested == ["http://localhost:8000/", "http://localhost:8000/next"]
    assert stats.links_external == 1
