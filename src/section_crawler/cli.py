"""
Command-line interface for the section crawler.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from section_crawler.config import (
    ConfigError,
    CrawlConfig,
    DEFAULT_MAX_DEPTH,
    DEFAULT_OUTPUT,
    DEFAULT_SECTION_DIR,
    DEFAULT_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKERS,
    load_config,
)
from section_crawler.core import CrawlError, CrawlStats, crawl
from section_crawler.report import ReportError, rank_sections, write_report
from section_crawler.sections import SectionMatcher, SectionRegistry, load_section_names

logger = logging.getLogger("section_crawler")


def print_summary(stats: CrawlStats, registry: SectionRegistry) -> None:
    """Print crawl summary to stderr."""
    sections = registry.snapshot()
    used = sum(1 for s in sections if not s.unused)

    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Pages crawled:          {stats.pages_crawled}\n")
    sys.stderr.write(f"Pages failed:           {stats.pages_failed}\n")
    sys.stderr.write(f"Non-HTML responses:     {stats.pages_not_html}\n")
    sys.stderr.write(f"Duplicate redirects:    {stats.pages_duplicate}\n")
    sys.stderr.write(f"Deepest level fetched:  {stats.max_depth_reached}\n")
    sys.stderr.write(f"External links dropped: {stats.links_external}\n")
    sys.stderr.write(f"Malformed links:        {stats.links_malformed}\n")
    sys.stderr.write(f"Links beyond max depth: {stats.links_too_deep}\n")
    if stats.truncated:
        sys.stderr.write("Page limit reached, crawl truncated.\n")
    sys.stderr.write(f"\nSections used:          {used}/{len(sections)}\n")

    sys.stderr.write("\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="section-crawler",
        description="Crawl a website, count which theme sections appear, and rank them in a spreadsheet.",
    )
    parser.add_argument("website", help="Website to crawl (e.g. https://example.com)")
    parser.add_argument(
        "--sections-dir",
        default=str(DEFAULT_SECTION_DIR),
        help="Directory whose file names list the sections to track (default: ./sections)",
    )
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH, help="Maximum crawl depth, seed is 1 (default: 3)")
    parser.add_argument("--output", default=str(DEFAULT_OUTPUT), help="Output .xlsx path (default: shopify_sections.xlsx)")
    parser.add_argument("--track-homepage", action="store_true", help="Add a 'Used on Homepage' column")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, help="Request timeout in seconds (default: 15)")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="Concurrent fetches (default: 8)")
    parser.add_argument("--max-pages", type=int, help="Stop scheduling pages after this many (default: no limit)")
    parser.add_argument("--verbose", action="store_true", help="Show progress, debug logging and summary")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # urllib3 debug output drowns the crawl lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run(config: CrawlConfig) -> CrawlStats:
    """Load sections, crawl, and write the report. Raises on fatal errors."""
    names = load_section_names(config.section_dir)
    logger.info("Tracking %d section(s) from %s", len(names), config.section_dir)

    registry = SectionRegistry(names)
    matcher = SectionMatcher(registry, track_homepage=config.track_homepage)

    stats = crawl(
        config.target_url,
        allowed_domains=config.allowed_domains,
        max_depth=config.max_depth,
        on_page=matcher.process_page,
        timeout_s=config.timeout_s,
        user_agent=config.user_agent,
        workers=config.workers,
        max_pages=config.max_pages,
        verbose=config.verbose,
    )

    if config.verbose:
        print_summary(stats, registry)

    rows = rank_sections(registry.snapshot())
    write_report(rows, config.output_path, track_homepage=config.track_homepage)
    return stats


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the section crawler CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(
            args.website,
            section_dir=args.sections_dir,
            max_depth=args.max_depth,
            track_homepage=args.track_homepage,
            output_path=args.output,
            timeout_s=args.timeout,
            user_agent=args.user_agent,
            workers=args.workers,
            max_pages=args.max_pages,
            verbose=args.verbose,
        )
        run(config)
    except (ConfigError, CrawlError, ReportError) as e:
        logger.error("%s", e)
        return 1

    print(f"Scraping and ranking complete. Saved to {config.output_path}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
