# directory_pipeline/agents/dedupe.py
"""
Candidate deduplication against the existing registry.

Strategy:
1) Run an ordered list of identity matchers (normalized name, then domain)
   against every existing vendor; the first hit rejects the candidate.
2) Run the same matchers against candidates already accepted earlier in this
   batch (input order), so two feed entries for one product yield one candidate.

APIs:
- dedupe_candidates(candidates, existing, matchers=DEFAULT_MATCHERS)
    returns: (accepted, decisions)
       accepted: candidates that survive, input order
       decisions: one DedupDecision per candidate with reason and matched slug
- parse_discovered(items, origin) -> List[DiscoveredVendor]
"""

from __future__ import annotations
import re
import logging
from typing import Any, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse

from directory_pipeline.models import DedupDecision, DiscoveredVendor, VendorRecord

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SLUG_SEP = re.compile(r"[^a-z0-9]+")


def normalize_name(name: str) -> str:
    return _NON_ALNUM.sub("", (name or "").lower())


def normalize_domain(url: str) -> Optional[str]:
    try:
        host = urlparse(url or "").hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def generate_slug(name: str) -> str:
    return _SLUG_SEP.sub("-", (name or "").lower()).strip("-")


class Identity(Protocol):
    name: str
    website: str


class Matcher(Protocol):
    reason: str

    def matches(self, candidate: Identity, other: Identity) -> bool:
        ...


class NameMatcher:
    reason = "name match"

    def matches(self, candidate: Identity, other: Identity) -> bool:
        a = normalize_name(candidate.name)
        return bool(a) and a == normalize_name(other.name)


class DomainMatcher:
    reason = "domain match"

    def matches(self, candidate: Identity, other: Identity) -> bool:
        a = normalize_domain(candidate.website)
        return a is not None and a == normalize_domain(other.website)


DEFAULT_MATCHERS: Tuple[Matcher, ...] = (NameMatcher(), DomainMatcher())


def _slug_of(other: Any) -> str:
    return getattr(other, "slug", None) or generate_slug(other.name)


def find_match(candidate: Identity, pool: Sequence[Any],
               matchers: Sequence[Matcher] = DEFAULT_MATCHERS) -> Optional[Tuple[str, str]]:
    """Return (reason, matched_slug) for the first vendor in pool that any matcher accepts."""
    for other in pool:
        for matcher in matchers:
            if matcher.matches(candidate, other):
                return matcher.reason, _slug_of(other)
    return None


def dedupe_candidates(candidates: Sequence[DiscoveredVendor],
                      existing: Sequence[VendorRecord],
                      matchers: Sequence[Matcher] = DEFAULT_MATCHERS,
                      ) -> Tuple[List[DiscoveredVendor], List[DedupDecision]]:
    accepted: List[DiscoveredVendor] = []
    decisions: List[DedupDecision] = []

    for cand in candidates:
        hit = find_match(cand, existing, matchers)
        in_batch = False
        if hit is None:
            hit = find_match(cand, accepted, matchers)
            in_batch = hit is not None

        if hit is not None:
            reason, matched = hit
            where = "duplicate in discovered list" if in_batch else "existing vendor"
            logger.info("Skipping %s: %s (%s, %s)", cand.name, reason, matched, where)
            decisions.append(DedupDecision(candidate=cand, accepted=False, reason=reason,
                                           matched=matched, in_batch=in_batch))
            continue

        accepted.append(cand)
        decisions.append(DedupDecision(candidate=cand, accepted=True))

    logger.info("Dedupe: %d new candidates, %d duplicates", len(accepted), len(decisions) - len(accepted))
    return accepted, decisions


def parse_discovered(items: Any, origin: str) -> List[DiscoveredVendor]:
    """
    Adapter boundary for discovery feeds: keep objects with a name and an
    http(s) website, drop everything else.
    """
    if not isinstance(items, list):
        logger.warning("Discovery feed from %s is not a list; ignoring", origin)
        return []
    out: List[DiscoveredVendor] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        website = item.get("website")
        if not isinstance(name, str) or not name.strip():
            logger.debug("Skipping unnamed discovery item from %s", origin)
            continue
        if not isinstance(website, str) or normalize_domain(website) is None:
            logger.info("Skipping %s: no website", name)
            continue
        description = item.get("description")
        out.append(DiscoveredVendor(
            name=name.strip(),
            website=website.strip(),
            description=description if isinstance(description, str) and description else None,
            source=item.get("source") if isinstance(item.get("source"), str) else origin,
        ))
    return out
