"""
Runtime configuration for a section crawl.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

DEFAULT_SECTION_DIR = Path("sections")
DEFAULT_OUTPUT = Path("shopify_sections.xlsx")
DEFAULT_MAX_DEPTH = 3
DEFAULT_TIMEOUT_S = 15.0
DEFAULT_USER_AGENT = "SectionCrawler/1.0"
DEFAULT_WORKERS = 8
DEFAULT_PORTS = {"http": 80, "https": 443}


class ConfigError(Exception):
    """Raised for fatal configuration problems (bad target URL, unreadable inputs)."""


@dataclass(slots=True)
class CrawlConfig:
    """Options for one crawl-and-report run."""
    target_url: str
    section_dir: Path = DEFAULT_SECTION_DIR
    max_depth: int = DEFAULT_MAX_DEPTH
    track_homepage: bool = False
    output_path: Path = DEFAULT_OUTPUT
    timeout_s: float = DEFAULT_TIMEOUT_S
    user_agent: str = DEFAULT_USER_AGENT
    workers: int = DEFAULT_WORKERS
    max_pages: Optional[int] = None
    verbose: bool = False

    @property
    def host(self) -> str:
        return urlparse(self.target_url).hostname or ""

    @property
    def port(self) -> Optional[int]:
        return urlparse(self.target_url).port

    @property
    def allowed_domains(self) -> Tuple[str, ...]:
        """
        The target host plus its ``www.`` variant (or bare variant).

        When the target carries a port, each entry is ``host:port``.
        """
        host = self.host
        if host.startswith("www."):
            hosts = (host, host[len("www."):])
        else:
            hosts = (host, f"www.{host}")
        if self.port:
            return tuple(f"{h}:{self.port}" for h in hosts)
        return hosts


def parse_target_url(website: str) -> str:
    """
    Reduce a website argument to ``scheme://host[:port]``.

    Raises ConfigError if the value has no http(s) scheme or no host.
    """
    try:
        parsed = urlparse((website or "").strip())
        port = parsed.port
    except ValueError as e:
        raise ConfigError(f"Error parsing website URL {website!r}: {e}") from e

    if parsed.scheme.lower() not in ("http", "https"):
        raise ConfigError(f"Error parsing website URL {website!r}: scheme must be http or https")
    if not parsed.hostname:
        raise ConfigError(f"Error parsing website URL {website!r}: missing host")

    scheme = parsed.scheme.lower()
    netloc = parsed.hostname.lower()
    if port and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    return f"{scheme}://{netloc}"


def load_config(
    website: str,
    *,
    section_dir: Optional[str] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
    track_homepage: bool = False,
    output_path: Optional[str] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    user_agent: str = DEFAULT_USER_AGENT,
    workers: int = DEFAULT_WORKERS,
    max_pages: Optional[int] = None,
    verbose: bool = False,
) -> CrawlConfig:
    """Build a validated ``CrawlConfig`` from CLI-style inputs."""
    if max_depth < 1:
        raise ConfigError(f"--max-depth must be at least 1 (got {max_depth})")
    if workers < 1:
        raise ConfigError(f"--workers must be at least 1 (got {workers})")
    if max_pages is not None and max_pages < 1:
        raise ConfigError(f"--max-pages must be at least 1 (got {max_pages})")

    return CrawlConfig(
        target_url=parse_target_url(website),
        section_dir=Path(section_dir) if section_dir else DEFAULT_SECTION_DIR,
        max_depth=max_depth,
        track_homepage=track_homepage,
        output_path=Path(output_path) if output_path else DEFAULT_OUTPUT,
        timeout_s=timeout_s,
        user_agent=user_agent,
        workers=workers,
        max_pages=max_pages,
        verbose=verbose,
    )
