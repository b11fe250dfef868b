# directory_pipeline/services/store.py
"""
Document storage helpers.

- load_json_document(path, required=False)
    Parse a JSON document. Missing optional documents return None; a missing
    required document or any unparseable content raises DocumentError.

- load_vendor_records(content_dir)
    Read the Content Store listing (one JSON file per vendor).

- load_previous_reviews(path)
    Read the previous run's aggregated-reviews document, keyed by vendor slug.

- write_json_atomic(path, data) / write_text_atomic(path, text)
    Write to a temp file in the target directory, then os.replace() it into
    place so readers never observe a partial file.
"""
from __future__ import annotations
import os
import json
import glob
import logging
import tempfile
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from directory_pipeline.models import AggregatedReview, VendorRecord

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class DocumentError(ValueError):
    """An input document is missing, unparseable or has the wrong shape."""


def load_json_document(path: str, required: bool = False) -> Optional[Any]:
    if not os.path.exists(path):
        if required:
            raise DocumentError(f"Required document not found: {path}")
        logger.info("Document not found, skipping: %s", path)
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DocumentError(f"Failed to parse {path}: {e}") from e


def load_vendor_records(content_dir: str) -> List[VendorRecord]:
    """
    Load every *.json file in content_dir as a VendorRecord, sorted by filename
    so the listing order is stable between runs.
    """
    if not os.path.isdir(content_dir):
        raise DocumentError(f"Content directory not found: {content_dir}")

    vendors: List[VendorRecord] = []
    for path in sorted(glob.glob(os.path.join(content_dir, "*.json"))):
        data = load_json_document(path, required=True)
        if not isinstance(data, dict):
            raise DocumentError(f"{path}: vendor file must contain an object")
        try:
            vendors.append(VendorRecord.model_validate(data))
        except ValidationError as e:
            raise DocumentError(f"{path}: invalid vendor record: {e}") from e

    logger.info("Loaded %d vendors from %s", len(vendors), content_dir)
    return vendors


def load_previous_reviews(path: str) -> Dict[str, AggregatedReview]:
    data = load_json_document(path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DocumentError(f"{path}: aggregated reviews must be an object keyed by vendor slug")

    previous: Dict[str, AggregatedReview] = {}
    for slug, entry in data.items():
        try:
            review = AggregatedReview.model_validate(entry)
        except ValidationError as e:
            raise DocumentError(f"{path}: invalid entry for '{slug}': {e}") from e
        review.vendor_slug = slug
        previous[slug] = review
    return previous


def _write_atomic(path: str, text: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=os.path.basename(path))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_json_atomic(path: str, data: Any) -> None:
    _write_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
    logger.debug("Wrote %s", path)


def write_text_atomic(path: str, text: str) -> None:
    _write_atomic(path, text)
    logger.debug("Wrote %s", path)
