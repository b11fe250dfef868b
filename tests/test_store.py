import os
import json

import pytest

from directory_pipeline.services.store import (
    DocumentError,
    load_json_document,
    load_previous_reviews,
    load_vendor_records,
    write_json_atomic,
    write_text_atomic,
)


class TestLoadDocuments:
    """JSON document loading"""

    def test_missing_optional_document(self, tmp_path):
        assert load_json_document(str(tmp_path / "nope.json")) is None

    def test_missing_required_document(self, tmp_path):
        with pytest.raises(DocumentError):
            load_json_document(str(tmp_path / "nope.json"), required=True)

    def test_unparseable_document(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[1, 2", encoding="utf-8")
        with pytest.raises(DocumentError):
            load_json_document(str(path))

    def test_previous_reviews_keyed_by_slug(self, tmp_path):
        path = tmp_path / "aggregated-reviews.json"
        path.write_text(json.dumps({
            "osmind": {
                "aggregateScore": 4.5,
                "totalCount": 2,
                "sources": [{"source": "g2", "score": 4.5, "count": 2, "url": "u", "lastUpdated": "2025-01-01"}],
                "lastAggregated": "2025-01-01",
            }
        }), encoding="utf-8")
        previous = load_previous_reviews(str(path))
        assert previous["osmind"].vendor_slug == "osmind"
        assert previous["osmind"].sources[0].last_updated == "2025-01-01"

    def test_previous_reviews_wrong_shape(self, tmp_path):
        path = tmp_path / "aggregated-reviews.json"
        path.write_text(json.dumps([]), encoding="utf-8")
        with pytest.raises(DocumentError):
            load_previous_reviews(str(path))

    def test_previous_reviews_invalid_entry(self, tmp_path):
        path = tmp_path / "aggregated-reviews.json"
        path.write_text(json.dumps({"osmind": {"totalCount": "many"}}), encoding="utf-8")
        with pytest.raises(DocumentError):
            load_previous_reviews(str(path))

    def test_previous_reviews_missing_is_empty(self, tmp_path):
        assert load_previous_reviews(str(tmp_path / "aggregated-reviews.json")) == {}


class TestVendorRecords:
    """Content Store listing"""

    def test_records_sorted_by_filename(self, tmp_path):
        (tmp_path / "b.json").write_text(json.dumps({"slug": "b", "name": "B", "website": "https://b.io", "x": 1}))
        (tmp_path / "a.json").write_text(json.dumps({"slug": "a", "name": "A", "website": "https://a.io"}))
        (tmp_path / "notes.txt").write_text("ignored")
        records = load_vendor_records(str(tmp_path))
        assert [r.slug for r in records] == ["a", "b"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DocumentError):
            load_vendor_records(str(tmp_path / "software"))

    def test_invalid_record(self, tmp_path):
        (tmp_path / "a.json").write_text(json.dumps({"slug": "a"}))
        with pytest.raises(DocumentError):
            load_vendor_records(str(tmp_path))


class TestAtomicWrite:
    """Temp file + rename writes"""

    def test_write_json_creates_parents_and_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "out" / "doc.json"
        write_json_atomic(str(path), {"name": "Ketamine Café"})
        assert path.read_text(encoding="utf-8") == '{\n  "name": "Ketamine Café"\n}\n'
        assert os.listdir(tmp_path / "out") == ["doc.json"]

    def test_overwrite_replaces_content(self, tmp_path):
        path = tmp_path / "summary.md"
        write_text_atomic(str(path), "first")
        write_text_atomic(str(path), "second")
        assert path.read_text(encoding="utf-8") == "second"

    def test_failed_serialization_keeps_old_file(self, tmp_path):
        path = tmp_path / "doc.json"
        write_json_atomic(str(path), [1])
        with pytest.raises(TypeError):
            write_json_atomic(str(path), {"bad": object()})
        assert json.loads(path.read_text()) == [1]
        assert os.listdir(tmp_path) == ["doc.json"]
