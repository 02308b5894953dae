"""
Crawl a website, count which predefined sections appear in its markup,
and export a ranked usage report to a spreadsheet.
"""
from section_crawler.config import ConfigError, CrawlConfig, load_config
from section_crawler.core import crawl, CrawlError, CrawlStats
from section_crawler.report import ReportError, ReportRow, rank_sections, write_report
from section_crawler.sections import Section, SectionMatcher, SectionRegistry, load_section_names
from section_crawler.visited import VisitedSet

__version__ = "1.0.0"
__all__ = [
    "crawl", "CrawlError", "CrawlStats",
    "ConfigError", "CrawlConfig", "load_config",
    "ReportError", "ReportRow", "rank_sections", "write_report",
    "Section", "SectionMatcher", "SectionRegistry", "load_section_names",
    "VisitedSet",
]
