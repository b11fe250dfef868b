"""
LangGraph pipelines for the vendor directory.

Three graphs, all driven by an explicit RunContext in the state:
- reviews:  load -> extract -> aggregate -> write
- acquire:  load -> dedupe -> verify -> classify -> write   (dedupe -> write when nothing is new)
- verify:   load -> verify -> classify -> write   (re-verify existing vendors)

Malformed input documents raise DocumentError out of pipeline.invoke(); no
artifact is written in that case, because writing is always the last node.

Run via:
    from directory_pipeline.pipeline_graph import run_review_pipeline
    state = run_review_pipeline(RunContext(run_date="2025-01-31"))
"""

from __future__ import annotations
import os
import time
import logging
from typing import TypedDict, List, Dict, Any, Optional, Tuple

from langgraph.graph import StateGraph, END

from directory_pipeline.agents.aggregate import AggregationResult, aggregate_reviews
from directory_pipeline.agents.classify import classify_all
from directory_pipeline.agents.dedupe import dedupe_candidates, parse_discovered
from directory_pipeline.agents.extract import ExtractionResult, extract_all
from directory_pipeline.agents.registry import MappingRegistry, load_registry
from directory_pipeline.agents.verify import fetch_discovery_feed, verify_vendors
from directory_pipeline.agents.write import (
    build_candidate_entry,
    describe_acquisition,
    summarize_classifications,
    write_aggregated_reviews,
    write_candidates,
    write_verification_reports,
)
from directory_pipeline.context import DISCOVERY_FILES, REVIEW_SOURCES, RunContext
from directory_pipeline.models import (
    AggregatedReview,
    Classification,
    DedupDecision,
    DiscoveredVendor,
    VendorRecord,
    VerificationReport,
)
from directory_pipeline.services.store import (
    DocumentError,
    load_json_document,
    load_previous_reviews,
    load_vendor_records,
)

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class PipelineState(TypedDict, total=False):
    ctx: RunContext
    mode: str
    registry: MappingRegistry
    previous: Dict[str, AggregatedReview]
    dumps: Dict[str, Optional[List[Any]]]
    extractions: List[ExtractionResult]
    aggregation: AggregationResult
    existing: List[VendorRecord]
    discovered: List[DiscoveredVendor]
    candidates: List[DiscoveredVendor]
    decisions: List[DedupDecision]
    targets: List[Any]
    reports: List[VerificationReport]
    classified: List[Tuple[VerificationReport, Classification]]
    entries: List[Dict[str, Any]]
    artifacts: Dict[str, str]
    warnings: List[str]
    start_time: float
    duration: float


# --- review aggregation -----------------------------------------------------

def node_load_reviews(state: PipelineState) -> PipelineState:
    ctx = state["ctx"]
    logger.info("[load] reviews dir=%s run_date=%s", ctx.reviews_dir, ctx.run_date)
    state["registry"] = load_registry(ctx.mappings_path)
    # previous output is a read-only snapshot taken once, before any extraction
    state["previous"] = load_previous_reviews(ctx.aggregated_path)
    dumps: Dict[str, Optional[List[Any]]] = {}
    for source in REVIEW_SOURCES:
        dumps[source] = load_json_document(ctx.dump_path(source))
    state["dumps"] = dumps
    return state


def node_extract(state: PipelineState) -> PipelineState:
    logger.info("[extract] sources=%d", sum(1 for d in state["dumps"].values() if d is not None))
    state["extractions"] = extract_all(state["dumps"], state["registry"])
    return state


def node_aggregate(state: PipelineState) -> PipelineState:
    logger.info("[aggregate] vendors=%d", len(state["registry"]))
    state["aggregation"] = aggregate_reviews(
        state["registry"],
        state["extractions"],
        state["previous"],
        state["ctx"].run_date,
    )
    return state


def node_write_reviews(state: PipelineState) -> PipelineState:
    path = write_aggregated_reviews(state["aggregation"], state["ctx"].aggregated_path)
    state.setdefault("artifacts", {})["aggregated_reviews"] = path
    return state


# --- acquisition --------------------------------------------------------------

def _load_discovered(ctx: RunContext, warnings: List[str]) -> List[DiscoveredVendor]:
    discovered: List[DiscoveredVendor] = []
    for filename, origin in DISCOVERY_FILES.items():
        path = os.path.join(ctx.acquire_dir, filename)
        items = load_json_document(path)
        if items is None:
            continue
        if not isinstance(items, list):
            raise DocumentError(f"{path}: discovery feed must be a JSON array")
        parsed = parse_discovered(items, origin)
        logger.info("Loaded %d vendors from %s", len(parsed), origin)
        discovered.extend(parsed)

    if ctx.discovery_feed_url:
        items = fetch_discovery_feed(ctx.discovery_feed_url, transport=ctx.feed_transport)
        if not items:
            warnings.append(f"discovery_feed_empty:{ctx.discovery_feed_url}")
        discovered.extend(parse_discovered(items, "feed"))
    return discovered


def node_load_acquire(state: PipelineState) -> PipelineState:
    ctx = state["ctx"]
    state.setdefault("warnings", [])
    state["existing"] = load_vendor_records(ctx.content_dir)
    state["discovered"] = _load_discovered(ctx, state["warnings"])
    logger.info("[load] existing=%d discovered=%d", len(state["existing"]), len(state["discovered"]))
    return state


def node_dedupe(state: PipelineState) -> PipelineState:
    accepted, decisions = dedupe_candidates(state.get("discovered", []), state.get("existing", []))
    state["candidates"] = accepted
    state["targets"] = list(accepted)
    state["decisions"] = decisions
    return state


def node_load_existing(state: PipelineState) -> PipelineState:
    ctx = state["ctx"]
    state["existing"] = load_vendor_records(ctx.content_dir)
    state["targets"] = list(state["existing"])
    return state


def node_verify(state: PipelineState) -> PipelineState:
    ctx = state["ctx"]
    targets = state.get("targets", [])
    logger.info("[verify] vendors=%d", len(targets))
    state["reports"] = verify_vendors(targets, ctx.run_date, **ctx.verify_options())
    return state


def node_classify(state: PipelineState) -> PipelineState:
    logger.info("[classify] reports=%d", len(state.get("reports", [])))
    state["classified"] = classify_all(state.get("reports", []))
    for category, names in summarize_classifications(state["classified"]).items():
        if names:
            logger.info("  %s: %s", category, ", ".join(names))
    return state


def node_write_candidates(state: PipelineState) -> PipelineState:
    ctx = state["ctx"]
    entries: List[Dict[str, Any]] = []
    for vendor, (report, classification) in zip(state.get("candidates", []), state.get("classified", [])):
        entries.append(build_candidate_entry(vendor, report, classification, ctx.run_date))
    state["entries"] = entries
    artifacts = write_candidates(ctx.acquire_dir, entries, state.get("decisions", []))
    state.setdefault("artifacts", {}).update(artifacts)
    logger.info("[write] %s", describe_acquisition(entries, state.get("decisions")))
    return state


def node_write_reports(state: PipelineState) -> PipelineState:
    artifacts = write_verification_reports(state["ctx"].data_dir, state.get("classified", []))
    state.setdefault("artifacts", {}).update(artifacts)
    return state


def _route_after_dedupe(state: PipelineState) -> str:
    if state.get("candidates"):
        return "verify"
    # an empty run still replaces the previous candidates
    logger.info("No new vendors to add.")
    return "write"


def _build_review_graph():
    graph = StateGraph(PipelineState)
    graph.add_node("load", node_load_reviews)
    graph.add_node("extract", node_extract)
    graph.add_node("aggregate", node_aggregate)
    graph.add_node("write", node_write_reviews)
    graph.set_entry_point("load")
    graph.add_edge("load", "extract")
    graph.add_edge("extract", "aggregate")
    graph.add_edge("aggregate", "write")
    graph.add_edge("write", END)
    return graph.compile()


def _build_acquire_graph():
    graph = StateGraph(PipelineState)
    graph.add_node("load", node_load_acquire)
    graph.add_node("dedupe", node_dedupe)
    graph.add_node("verify", node_verify)
    graph.add_node("classify", node_classify)
    graph.add_node("write", node_write_candidates)
    graph.set_entry_point("load")
    graph.add_edge("load", "dedupe")
    graph.add_conditional_edges("dedupe", _route_after_dedupe, {"verify": "verify", "write": "write"})
    graph.add_edge("verify", "classify")
    graph.add_edge("classify", "write")
    graph.add_edge("write", END)
    return graph.compile()


def _build_verify_graph():
    graph = StateGraph(PipelineState)
    graph.add_node("load", node_load_existing)
    graph.add_node("verify", node_verify)
    graph.add_node("classify", node_classify)
    graph.add_node("write", node_write_reports)
    graph.set_entry_point("load")
    graph.add_edge("load", "verify")
    graph.add_edge("verify", "classify")
    graph.add_edge("classify", "write")
    graph.add_edge("write", END)
    return graph.compile()


review_pipeline = _build_review_graph()
acquire_pipeline = _build_acquire_graph()
verify_pipeline = _build_verify_graph()


def _run(pipeline, mode: str, ctx: RunContext) -> PipelineState:
    init_state: PipelineState = {
        "ctx": ctx,
        "mode": mode,
        "artifacts": {},
        "warnings": [],
        "start_time": time.time(),
    }
    final_state = pipeline.invoke(init_state)
    final_state["duration"] = time.time() - init_state["start_time"]
    logger.info("[%s] done in %.2fs", mode, final_state["duration"])
    return final_state


def run_review_pipeline(ctx: RunContext) -> PipelineState:
    return _run(review_pipeline, "reviews", ctx)


def run_acquisition_pipeline(ctx: RunContext) -> PipelineState:
    return _run(acquire_pipeline, "acquire", ctx)


def run_verification_pipeline(ctx: RunContext) -> PipelineState:
    return _run(verify_pipeline, "verify", ctx)


def run_full_pipeline(ctx: RunContext) -> Dict[str, PipelineState]:
    """Review aggregation then vendor acquisition; they touch disjoint artifacts."""
    return {
        "reviews": run_review_pipeline(ctx),
        "acquire": run_acquisition_pipeline(ctx),
    }
