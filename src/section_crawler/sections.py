"""
Section registry and the attribute heuristics that classify DOM elements.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from section_crawler.config import ConfigError

logger = logging.getLogger(__name__)

SHOPIFY_SECTION_ID_PREFIX = "shopify-section-"
DATA_ATTRIBUTES: Tuple[str, ...] = ("data-section", "data-module")


@dataclass(slots=True)
class Section:
    """Usage record for one trackable section."""
    name: str
    count: int = 0
    is_homepage: bool = False

    @property
    def unused(self) -> bool:
        return self.count == 0


def load_section_names(directory: Path | str) -> List[str]:
    """
    List section names from a directory of template files.

    Each regular, non-hidden file contributes its base name with the
    extension stripped (``hero.liquid`` -> ``hero``). Result is sorted
    and deduplicated.
    """
    path = Path(directory)
    try:
        entries = list(path.iterdir())
    except OSError as e:
        raise ConfigError(f"Error reading sections directory {path}: {e}") from e

    names = {
        entry.stem
        for entry in entries
        if entry.is_file() and not entry.name.startswith(".") and entry.stem
    }
    return sorted(names)


class SectionRegistry:
    """Name -> Section map; all mutation goes through one lock."""

    def __init__(self, names: Iterable[str]) -> None:
        self._sections: Dict[str, Section] = {name: Section(name=name) for name in names}
        self._order: Tuple[str, ...] = tuple(sorted(self._sections))
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sections)

    def __contains__(self, name: object) -> bool:
        return name in self._sections

    def names(self) -> Tuple[str, ...]:
        """Registered names in lexicographic order (the match order)."""
        return self._order

    def record(self, counts: Mapping[str, int], on_homepage: bool = False) -> None:
        """Merge one page's partial counts."""
        if not counts:
            return
        with self._lock:
            for name, n in counts.items():
                if n <= 0:
                    continue
                section = self._sections[name]
                section.count += n
                if on_homepage:
                    section.is_homepage = True

    def get(self, name: str) -> Section:
        with self._lock:
            return replace(self._sections[name])

    def snapshot(self) -> List[Section]:
        """Copies of every section, safe to read after (or during) a crawl."""
        with self._lock:
            return [replace(self._sections[name]) for name in self._order]


# --- Match rules -------------------------------------------------------------

def _attr(element, name: str) -> str:
    value = element.get(name)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


class MatchRule(ABC):
    """Decides whether an element is an instance of a named section."""

    @abstractmethod
    def matches(self, element, name: str) -> bool:
        ...


class ClassSubstringRule(MatchRule):
    """The raw class attribute contains the name anywhere (``hero-banner`` ~ ``hero``)."""

    def matches(self, element, name: str) -> bool:
        return name in _attr(element, "class")


class DataAttributeRule(MatchRule):
    """A ``data-section`` or ``data-module`` attribute equals the name exactly."""

    def __init__(self, attributes: Sequence[str] = DATA_ATTRIBUTES) -> None:
        self.attributes = tuple(attributes)

    def matches(self, element, name: str) -> bool:
        return any(element.get(attr) == name for attr in self.attributes)


class IdPrefixRule(MatchRule):
    """The id starts with ``shopify-section-`` followed by the name."""

    def __init__(self, prefix: str = SHOPIFY_SECTION_ID_PREFIX) -> None:
        self.prefix = prefix

    def matches(self, element, name: str) -> bool:
        return _attr(element, "id").startswith(self.prefix + name)


DEFAULT_RULES: Tuple[MatchRule, ...] = (
    ClassSubstringRule(),
    DataAttributeRule(),
    IdPrefixRule(),
)


def is_homepage_url(url: str) -> bool:
    """True for the site root: an empty path or exactly ``/``."""
    return urlparse(url).path in ("", "/")


class SectionMatcher:
    """
    Classifies elements into at most one registered section each.

    Names are tried in lexicographic order; for each name the rules are
    tried in order, and the first hit wins.
    """

    def __init__(
        self,
        registry: SectionRegistry,
        *,
        track_homepage: bool = False,
        rules: Sequence[MatchRule] = DEFAULT_RULES,
    ) -> None:
        self.registry = registry
        self.track_homepage = track_homepage
        self.rules = tuple(rules)

    def classify(self, element) -> Optional[str]:
        """Return the first matching section name, or None."""
        for name in self.registry.names():
            for rule in self.rules:
                if rule.matches(element, name):
                    return name
        return None

    def count_page(self, elements: Iterable) -> Counter:
        """Tally matches for one page without touching shared state."""
        counts: Counter = Counter()
        for element in elements:
            name = self.classify(element)
            if name is not None:
                counts[name] += 1
        return counts

    def process_page(self, elements: Iterable, page_url: str) -> Counter:
        """Count one page's elements and merge the result into the registry."""
        counts = self.count_page(elements)
        on_homepage = self.track_homepage and is_homepage_url(page_url)
        self.registry.record(counts, on_homepage=on_homepage)
        if counts:
            logger.debug("Matched %d section element(s) on %s", sum(counts.values()), page_url)
        return counts

    def on_element(self, element, page_url: str) -> None:
        """Per-element hook; merges each match immediately."""
        name = self.classify(element)
        if name is not None:
            on_homepage = self.track_homepage and is_homepage_url(page_url)
            self.registry.record({name: 1}, on_homepage=on_homepage)
