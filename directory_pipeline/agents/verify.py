# directory_pipeline/agents/verify.py
"""
Evidence collector (vendor website verification).

- Probes each vendor website with a HEAD request (PROBE_TIMEOUT); unreachable
  or non-2xx sites short-circuit to an `unverified` report.
- Fetches a fixed set of pages (home, pricing, features, psychiatry, solutions,
  about) with GET (PAGE_TIMEOUT); individual page failures are skipped.
- Strips markup with BeautifulSoup, lowercases, collapses whitespace and
  concatenates the pages into one corpus per vendor.
- Counts ketamine (narrow) and psychiatry (broad) keyword occurrences and
  extracts price-like strings.
- Uses async httpx with a bounded worker pool; requests to the same host are
  spaced by a HostPacer. No retries.

The collector never decides verified/needs_review; that is the classifier's job.

verify_vendors(vendors, run_date, ...) -> List[VerificationReport]   (sync wrapper)
"""
from __future__ import annotations
import re
import json
import asyncio
import logging
from typing import Any, List, Optional, Sequence, Union
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from directory_pipeline.config import cfg
from directory_pipeline.models import (
    DiscoveredVendor,
    KeywordEvidence,
    KeywordMatch,
    VendorRecord,
    VerificationReport,
)
from directory_pipeline.services.rate_limiter import HostPacer, get_redis, host_from_url

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

VendorLike = Union[VendorRecord, DiscoveredVendor]

# Narrow, high-specificity vocabulary
KETAMINE_KEYWORDS = [
    "ketamine",
    "spravato",
    "esketamine",
    "iv infusion",
    "im injection",
    "intramuscular",
    "infusion clinic",
    "infusion therapy",
    "treatment series",
    "rems",
]

# Broad, adjacent-category vocabulary
PSYCHIATRY_KEYWORDS = [
    "psychiatry",
    "psychiatric",
    "behavioral health",
    "mental health",
    "outcome tracking",
    "phq-9",
    "gad-7",
    "rating scales",
    "outcome measures",
]

PAGES_TO_CHECK = ["", "/pricing", "/features", "/psychiatry", "/solutions", "/about"]

_AMOUNT = r"\$(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)"
PRICE_PATTERNS = [
    re.compile(_AMOUNT + r"\s*(?:/|\s*per\s*)\s*(?:month|mo|clinician|provider|user)", re.IGNORECASE),
    re.compile(r"(?:starting\s*(?:at|from)\s*)" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(\d{1,3}(?:,\d{3})*(?:\.\d{2})?)\s*(?:usd|dollars?)\s*(?:/|\s*per\s*)\s*(?:month|mo)", re.IGNORECASE),
]

_WS_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Visible page text, lowercased, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return _WS_RE.sub(" ", text).strip().lower()


def search_keywords(content: str, keywords: Sequence[str]) -> KeywordEvidence:
    if not content:
        return KeywordEvidence()
    matches: List[KeywordMatch] = []
    total = 0
    for keyword in keywords:
        n = len(re.findall(re.escape(keyword), content, flags=re.IGNORECASE))
        if n:
            total += n
            matches.append(KeywordMatch(keyword=keyword, count=n))
    return KeywordEvidence(count=total, matches=matches)


def extract_pricing(content: str) -> Optional[List[str]]:
    if not content:
        return None
    prices: List[str] = []
    for pattern in PRICE_PATTERNS:
        for match in pattern.finditer(content):
            prices.append(match.group(0))
    return prices or None


def _unreachable_report(vendor: VendorLike, run_date: str, error: str) -> VerificationReport:
    return VerificationReport(
        vendor=getattr(vendor, "slug", None),
        name=vendor.name,
        website=vendor.website,
        website_live=False,
        website_error=error,
        status="unverified",
        verification_date=run_date,
    )


async def check_website(client: httpx.AsyncClient, url: str, pacer: HostPacer,
                        timeout: float) -> Optional[str]:
    """Return None when the site answers HEAD with 2xx, else an error string."""
    await pacer.wait(host_from_url(url))
    try:
        resp = await client.head(url, follow_redirects=True, timeout=timeout)
    except httpx.HTTPError as e:
        return f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
    if not resp.is_success:
        return f"HTTP {resp.status_code}"
    return None


async def fetch_page_text(client: httpx.AsyncClient, url: str, pacer: HostPacer,
                          timeout: float) -> Optional[str]:
    await pacer.wait(host_from_url(url))
    try:
        resp = await client.get(url, follow_redirects=True, timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug("fetch failed for %s: %s", url, e)
        return None
    if not resp.is_success:
        logger.debug("fetch got %s for %s", resp.status_code, url)
        return None
    return html_to_text(resp.text or "")


async def collect_evidence(vendor: VendorLike,
                           client: httpx.AsyncClient,
                           pacer: HostPacer,
                           run_date: str,
                           probe_timeout: float,
                           page_timeout: float) -> VerificationReport:
    logger.info("Verifying: %s (%s)", vendor.name, vendor.website)

    error = await check_website(client, vendor.website, pacer, probe_timeout)
    if error is not None:
        logger.info("  %s unreachable: %s", vendor.name, error)
        return _unreachable_report(vendor, run_date, error)

    pages_checked: List[str] = []
    texts: List[str] = []
    for page_path in PAGES_TO_CHECK:
        page_url = urljoin(vendor.website, page_path) if page_path else vendor.website
        text = await fetch_page_text(client, page_url, pacer, page_timeout)
        if text is None:
            continue
        texts.append(text)
        pages_checked.append(page_path or "/")

    corpus = " ".join(texts)
    return VerificationReport(
        vendor=getattr(vendor, "slug", None),
        name=vendor.name,
        website=vendor.website,
        website_live=True,
        pages_checked=pages_checked,
        ketamine_evidence=search_keywords(corpus, KETAMINE_KEYWORDS),
        psychiatry_evidence=search_keywords(corpus, PSYCHIATRY_KEYWORDS),
        pricing_found=extract_pricing(corpus),
        verification_date=run_date,
    )


async def verify_vendors_async(vendors: Sequence[VendorLike],
                               run_date: str,
                               pacer: Optional[HostPacer] = None,
                               max_concurrent: Optional[int] = None,
                               probe_timeout: Optional[float] = None,
                               page_timeout: Optional[float] = None,
                               transport: Optional[httpx.AsyncBaseTransport] = None) -> List[VerificationReport]:
    if not vendors:
        return []
    pacer = pacer or HostPacer(cfg.HOST_MIN_INTERVAL, redis_client=get_redis())
    max_concurrent = max(1, max_concurrent or cfg.MAX_CONCURRENT_VERIFICATIONS)
    probe_timeout = probe_timeout if probe_timeout is not None else cfg.PROBE_TIMEOUT
    page_timeout = page_timeout if page_timeout is not None else cfg.PAGE_TIMEOUT

    results: List[Optional[VerificationReport]] = [None] * len(vendors)
    sem = asyncio.Semaphore(max_concurrent)
    limits = httpx.Limits(max_connections=max_concurrent * 2, max_keepalive_connections=max_concurrent)
    headers = {"User-Agent": cfg.USER_AGENT}

    async with httpx.AsyncClient(limits=limits, headers=headers, transport=transport) as client:

        async def _verify(i: int, vendor: VendorLike):
            async with sem:
                try:
                    results[i] = await collect_evidence(vendor, client, pacer, run_date,
                                                        probe_timeout, page_timeout)
                except Exception as e:
                    # one vendor's failure must not abort the batch
                    logger.exception("Verification failed for %s: %s", vendor.name, e)
                    results[i] = _unreachable_report(vendor, run_date, str(e) or type(e).__name__)

        await asyncio.gather(*(_verify(i, v) for i, v in enumerate(vendors)))

    return [r for r in results if r is not None]


def verify_vendors(vendors: Sequence[VendorLike], run_date: str, **kwargs: Any) -> List[VerificationReport]:
    """
    Synchronous wrapper used by the pipeline. Reports come back in input order.
    """
    reports = asyncio.run(verify_vendors_async(vendors, run_date, **kwargs))
    live = sum(1 for r in reports if r.website_live)
    logger.info("Verification: %d vendors checked, %d live, %d unreachable",
                len(reports), live, len(reports) - live)
    return reports


def fetch_discovery_feed(url: str, timeout: float = 20.0,
                         transport: Optional[httpx.BaseTransport] = None) -> List[Any]:
    """
    GET a remote discovery feed (JSON array of vendor-like objects).
    Network or parse failures are logged and yield an empty feed.
    """
    try:
        with httpx.Client(transport=transport, headers={"User-Agent": cfg.USER_AGENT}) as client:
            resp = client.get(url, timeout=timeout, follow_redirects=True)
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, json.JSONDecodeError) as e:
        logger.exception("Discovery feed fetch failed for %s: %s", url, e)
        return []
    if not isinstance(data, list):
        logger.warning("Discovery feed at %s is not a JSON array; ignoring", url)
        return []
    return data
