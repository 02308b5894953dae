"""
Core crawling logic: bounded-depth, same-domain, level-by-level BFS.
"""
from __future__ import annotations

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse, urlunparse, urldefrag

import requests
from bs4 import BeautifulSoup

from section_crawler.visited import VisitedSet

logger = logging.getLogger(__name__)

# Pre-defined file extensions to skip (frozen set for O(1) lookup)
SKIP_EXTENSIONS: frozenset[str] = frozenset((
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
    ".pdf", ".zip", ".rar", ".7z",
    ".mp4", ".mp3", ".wav", ".webm",
    ".css", ".js", ".map", ".ico",
    ".woff", ".woff2", ".ttf", ".eot",
))

ElementHook = Callable[[object, str], None]
PageHook = Callable[[Iterable, str], object]
LinkHook = Callable[[str, int], None]


class CrawlError(Exception):
    """The seed page could not be visited; nothing was crawled."""


class PageError(Exception):
    """A single page visit failed (bad status, off-domain redirect, unparsable body)."""


@dataclass(slots=True)
class CrawlStats:
    """Statistics collected during crawl for summary output."""
    pages_crawled: int = 0
    pages_failed: int = 0
    pages_not_html: int = 0
    pages_duplicate: int = 0
    links_malformed: int = 0
    links_external: int = 0
    links_too_deep: int = 0
    max_depth_reached: int = 0
    truncated: bool = False


def _authority(parsed) -> str:
    """Lowercased host, plus the port when it is not the scheme's default."""
    hostname = (parsed.hostname or "").lower()
    port = parsed.port
    if (parsed.scheme == "http" and port == 80) or (parsed.scheme == "https" and port == 443):
        return hostname
    if port:
        return f"{hostname}:{port}"
    return hostname


def normalize_url(url: str, base: str) -> Optional[str]:
    """
    Normalize URL for deduplication and comparison.

    - Joins relative URLs against base
    - Drops fragments (#...)
    - Normalizes scheme/host case
    - Removes default ports (:80, :443)
    - Keeps querystrings (they matter for uniqueness)

    Returns None for non-http(s) links and skipped file types.
    Raises ValueError when the href cannot be parsed at all.
    """
    if not url:
        return None

    joined, _ = urldefrag(urljoin(base, url.strip()))
    parsed = urlparse(joined)

    if parsed.scheme not in ("http", "https"):
        return None

    # Skip non-page file extensions (O(1) lookup with frozenset)
    path_lower = (parsed.path or "").lower()
    if any(path_lower.endswith(ext) for ext in SKIP_EXTENSIONS):
        return None

    if not parsed.hostname:
        raise ValueError(f"no host in {joined!r}")

    return urlunparse((
        parsed.scheme.lower(),
        _authority(parsed),
        parsed.path or "/",
        parsed.params,
        parsed.query,
        ""  # No fragment
    ))


def is_allowed(url: str, allowed_domains: Sequence[str]) -> bool:
    """
    Check if the URL's authority is one of the allowed domains.

    Entries are bare hosts (``example.com``) or host:port pairs
    (``localhost:8000``); a non-default port must match exactly.
    """
    try:
        authority = _authority(urlparse(url))
    except ValueError:
        return False
    return authority in allowed_domains


def parse_page(html: str) -> BeautifulSoup:
    """Parse HTML keeping ``class`` as the raw attribute string."""
    return BeautifulSoup(html, "lxml", multi_valued_attributes=None)


def extract_links(soup: BeautifulSoup) -> List[str]:
    """Extract all href values from <a> tags."""
    return [a["href"] for a in soup.find_all("a", href=True) if a.get("href")]


def print_scan_line(url: str, status: Optional[int], depth: int, new_links: int) -> None:
    """Print single scan result line."""
    status_str = str(status) if status else "ERR"
    sys.stderr.write(f"  → {status_str} d{depth} {url} (+{new_links} links)\n")
    sys.stderr.flush()


def crawl(
    start_url: str,
    *,
    allowed_domains: Sequence[str],
    max_depth: int = 3,
    on_element: Optional[ElementHook] = None,
    on_page: Optional[PageHook] = None,
    on_link: Optional[LinkHook] = None,
    timeout_s: float = 15.0,
    user_agent: str = "SectionCrawler/1.0",
    workers: int = 8,
    max_pages: Optional[int] = None,
    session: Optional[requests.Session] = None,
    verbose: bool = False,
) -> CrawlStats:
    """
    Crawl same-domain links from ``start_url`` up to ``max_depth``.

    The seed is depth 1; links found on a depth-d page are fetched at
    depth d+1. Each depth level is fetched concurrently before the next
    one starts, so every page is reached at its shortest depth.

    Args:
        start_url: The URL to start crawling from.
        allowed_domains: Hosts (``host`` or ``host:port``) whose links may be followed.
        max_depth: Deepest level that is fetched.
        on_element: Called as ``on_element(element, page_url)`` for every
            element of every fetched HTML page.
        on_page: Called as ``on_page(elements, page_url)`` once per page.
        on_link: Called as ``on_link(url, depth)`` for each link accepted
            for a visit.
        timeout_s: HTTP request timeout in seconds.
        user_agent: User-Agent header to use for requests.
        workers: Number of concurrent fetch threads.
        max_pages: Optional ceiling on the number of pages fetched.
        session: Optional pre-built HTTP session.
        verbose: Whether to print a line per fetched page.

    Raises:
        CrawlError: if the seed page cannot be visited.
    """
    allowed = tuple(d.lower() for d in allowed_domains)
    try:
        seed = normalize_url(start_url, start_url)
    except ValueError as e:
        raise CrawlError(f"Invalid start URL {start_url!r}: {e}") from e
    if not seed:
        raise CrawlError(f"Invalid start URL: {start_url}")
    if not is_allowed(seed, allowed):
        raise CrawlError(f"Start URL {seed} is outside allowed domains {', '.join(allowed)}")

    own_session = session is None
    if own_session:
        session = requests.Session()
        session.headers["User-Agent"] = user_agent

    visited = VisitedSet()
    stats = CrawlStats()
    stats_lock = threading.Lock()

    def fetch(url: str) -> Tuple[int, str, Optional[BeautifulSoup]]:
        """Fetch one page; returns (status, final URL, soup or None for non-HTML)."""
        resp = session.get(url, timeout=timeout_s, allow_redirects=True)
        if resp.status_code >= 400:
            raise PageError(f"HTTP {resp.status_code}")

        final_url = getattr(resp, "url", None) or url
        if not is_allowed(final_url, allowed):
            raise PageError(f"redirected outside allowed domains to {final_url}")
        if final_url != url:
            # host and port already validated above
            final_url = normalize_url(final_url, final_url) or final_url

        content_type = (resp.headers.get("content-type") or "").lower()
        if "text/html" not in content_type:
            return resp.status_code, final_url, None

        try:
            return resp.status_code, final_url, parse_page(resp.text)
        except Exception as e:  # parser errors vary by backend
            raise PageError(f"parse failure: {e}") from e

    def discover(soup: BeautifulSoup, page_url: str, depth: int) -> List[str]:
        """Link-discovery hook: schedule in-domain, within-depth, unseen links."""
        found: List[str] = []
        too_deep = depth >= max_depth

        for href in extract_links(soup):
            try:
                target = normalize_url(href, base=page_url)
            except ValueError as e:
                logger.debug("Skipping malformed link %r on %s: %s", href, page_url, e)
                with stats_lock:
                    stats.links_malformed += 1
                continue
            if not target:
                continue
            if not is_allowed(target, allowed):
                with stats_lock:
                    stats.links_external += 1
                continue
            if too_deep:
                if target not in visited:
                    with stats_lock:
                        stats.links_too_deep += 1
                continue
            if not visited.try_mark(target):
                continue
            if on_link is not None:
                on_link(target, depth + 1)
            found.append(target)
        return found

    def visit(url: str, depth: int) -> List[str]:
        status, page_url, soup = fetch(url)
        # a redirect target reached earlier (or scheduled) is the same page
        if page_url != url and not visited.try_mark(page_url):
            logger.debug("Skipping %s: redirected to already visited %s", url, page_url)
            with stats_lock:
                stats.pages_duplicate += 1
            return []

        with stats_lock:
            stats.pages_crawled += 1
            stats.max_depth_reached = max(stats.max_depth_reached, depth)
            if soup is None:
                stats.pages_not_html += 1

        if soup is None:
            if verbose:
                print_scan_line(url, status, depth, 0)
            return []

        elements = soup.find_all(True)
        if on_element is not None:
            for element in elements:
                on_element(element, page_url)
        if on_page is not None:
            on_page(elements, page_url)

        links = discover(soup, page_url, depth)
        if verbose:
            print_scan_line(page_url, status, depth, len(links))
        return links

    def visit_safely(url: str, depth: int) -> List[str]:
        try:
            return visit(url, depth)
        except (requests.RequestException, PageError) as e:
            logger.warning("Error visiting link %s: %s", url, e)
            with stats_lock:
                stats.pages_failed += 1
            if verbose:
                print_scan_line(url, None, depth, 0)
            return []

    try:
        visited.try_mark(seed)
        logger.info("Starting crawl from %s (max depth %d)", seed, max_depth)
        try:
            frontier = visit(seed, 1)
        except (requests.RequestException, PageError) as e:
            raise CrawlError(f"Error visiting target URL {seed}: {e}") from e

        depth = 2
        with ThreadPoolExecutor(max_workers=workers) as executor:
            while frontier and depth <= max_depth:
                frontier = sorted(frontier)
                if max_pages is not None:
                    remaining = max_pages - stats.pages_crawled - stats.pages_failed - stats.pages_duplicate
                    if remaining < len(frontier):
                        stats.truncated = True
                        logger.warning(
                            "Page limit %d reached; dropping %d scheduled page(s)",
                            max_pages, len(frontier) - max(remaining, 0),
                        )
                        frontier = frontier[:max(remaining, 0)]

                futures = [executor.submit(visit_safely, url, depth) for url in frontier]
                next_frontier: List[str] = []
                for future in as_completed(futures):
                    next_frontier.extend(future.result())

                frontier = next_frontier
                depth += 1
    finally:
        if own_session:
            session.close()

    logger.info(
        "Crawl finished: %d page(s) fetched, %d failed",
        stats.pages_crawled, stats.pages_failed,
    )
    return stats
