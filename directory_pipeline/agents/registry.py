# directory_pipeline/agents/registry.py
"""
Mapping Registry: internal vendor slug -> per-source external identifiers.

Document shape (data/reviews/vendor-mappings.json):

    {
      "vendors": {
        "osmind": {
          "g2": {"slug": "osmind", "url": "https://www.g2.com/products/osmind/reviews"},
          "capterra": null
        }
      }
    }

A null source mapping means "no known mapping, do not aggregate this source".

APIs:
- MappingRegistry.from_document(doc) / load_registry(path)
- registry.lookup(vendor_slug, source) -> SourceMapping | None
- registry.resolve(source, external_slug) -> vendor_slug | None
- validate_registry(doc, known_slugs) -> (errors, warnings)
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from directory_pipeline.models import SourceMapping
from directory_pipeline.services.store import DocumentError, load_json_document

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

SOURCES = ("capterra", "g2")

# Expected host suffix per source; a mismatch is a warning, not an error
SOURCE_DOMAINS = {
    "g2": "g2.com",
    "capterra": "capterra.com",
}


class MappingRegistry:
    """Read-only view over the vendor mappings document."""

    def __init__(self, mappings: Dict[str, Dict[str, Optional[SourceMapping]]]):
        self._mappings = mappings

    @classmethod
    def from_document(cls, doc: Any) -> "MappingRegistry":
        if not isinstance(doc, dict) or not isinstance(doc.get("vendors"), dict):
            raise DocumentError('vendor mappings must be an object with a "vendors" object')

        mappings: Dict[str, Dict[str, Optional[SourceMapping]]] = {}
        for vendor_slug, entry in doc["vendors"].items():
            if not isinstance(entry, dict):
                raise DocumentError(f'"{vendor_slug}": mapping must be an object')
            per_source: Dict[str, Optional[SourceMapping]] = {}
            for source in SOURCES:
                raw = entry.get(source)
                if not isinstance(raw, dict) or not raw.get("slug"):
                    per_source[source] = None
                    continue
                url = raw.get("url")
                per_source[source] = SourceMapping(
                    slug=str(raw["slug"]),
                    url=url if isinstance(url, str) and url else None,
                )
            mappings[vendor_slug] = per_source
        return cls(mappings)

    def vendor_slugs(self) -> List[str]:
        return list(self._mappings.keys())

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, vendor_slug: str) -> bool:
        return vendor_slug in self._mappings

    def lookup(self, vendor_slug: str, source: str) -> Optional[SourceMapping]:
        return self._mappings.get(vendor_slug, {}).get(source)

    def resolve(self, source: str, external_slug: str) -> Optional[str]:
        """Find the vendor whose `source` mapping has this external slug (case-insensitive)."""
        if not external_slug:
            return None
        wanted = external_slug.lower()
        for vendor_slug, per_source in self._mappings.items():
            mapping = per_source.get(source)
            if mapping is not None and mapping.slug.lower() == wanted:
                return vendor_slug
        return None


def load_registry(path: str) -> MappingRegistry:
    doc = load_json_document(path, required=True)
    registry = MappingRegistry.from_document(doc)
    logger.info("Loaded mappings for %d vendors", len(registry))
    return registry


def _is_valid_url(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _url_matches_source(url: str, source: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    expected = SOURCE_DOMAINS[source]
    return host == expected or host.endswith("." + expected)


def validate_registry(doc: Any, known_slugs: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Validation gate for the mappings document. Not run by the aggregation
    pipeline itself.

    Errors: unknown vendor slug, non-object mapping, source mapping that is
    neither null nor {slug, url} with a valid URL.
    Warnings: URL outside the expected source domain, vendor with no source
    mappings, Content Store vendor without a mapping entry.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(doc, dict) or not isinstance(doc.get("vendors"), dict):
        return ['vendor mappings must be an object with a "vendors" object'], warnings

    known = set(known_slugs)
    vendors = doc["vendors"]

    for slug, mapping in vendors.items():
        if slug not in known:
            errors.append(f'"{slug}": no matching software file found')
            continue
        if not isinstance(mapping, dict):
            errors.append(f'"{slug}": mapping must be an object')
            continue

        for source in SOURCES:
            entry = mapping.get(source)
            if entry is None:
                continue
            if not isinstance(entry, dict):
                errors.append(f'"{slug}".{source} must be an object or null')
                continue
            if not entry.get("slug") or not isinstance(entry.get("slug"), str):
                errors.append(f'"{slug}".{source}.slug must be a non-empty string')
            url = entry.get("url")
            if not _is_valid_url(url):
                errors.append(f'"{slug}".{source}.url must be a valid URL')
            elif not _url_matches_source(url, source):
                warnings.append(f'"{slug}".{source}.url doesn\'t look like a {source} URL')

        if all(mapping.get(source) is None for source in SOURCES):
            warnings.append(f'"{slug}": has no {" or ".join(SOURCES)} mapping')

    for slug in sorted(known):
        if slug not in vendors:
            warnings.append(f'Software "{slug}" has no mapping entry')

    return errors, warnings
