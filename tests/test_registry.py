import json

import pytest

from directory_pipeline.agents.registry import MappingRegistry, load_registry, validate_registry
from directory_pipeline.services.store import DocumentError


DOC = {
    "vendors": {
        "osmind": {
            "g2": {"slug": "osmind", "url": "https://www.g2.com/products/osmind/reviews"},
            "capterra": None,
        },
        "spruce-health": {
            "g2": {"slug": "Spruce-Health", "url": "https://www.g2.com/products/spruce-health/reviews"},
            "capterra": {"slug": "spruce", "url": "https://www.capterra.com/p/1234/spruce/"},
        },
        "no-sources": {"g2": None, "capterra": None},
    }
}


class TestMappingRegistry:
    """Lookup and reverse resolution over the mappings document"""

    def test_lookup_returns_mapping_or_none(self):
        reg = MappingRegistry.from_document(DOC)
        assert reg.lookup("osmind", "g2").slug == "osmind"
        assert reg.lookup("osmind", "capterra") is None
        assert reg.lookup("missing", "g2") is None

    def test_resolve_is_case_insensitive(self):
        reg = MappingRegistry.from_document(DOC)
        assert reg.resolve("g2", "spruce-health") == "spruce-health"
        assert reg.resolve("g2", "OSMIND") == "osmind"
        assert reg.resolve("capterra", "osmind") is None
        assert reg.resolve("g2", "") is None

    def test_vendor_order_follows_document(self):
        reg = MappingRegistry.from_document(DOC)
        assert reg.vendor_slugs() == ["osmind", "spruce-health", "no-sources"]
        assert len(reg) == 3
        assert "no-sources" in reg

    def test_missing_vendors_object_is_fatal(self):
        with pytest.raises(DocumentError):
            MappingRegistry.from_document({"mappings": {}})
        with pytest.raises(DocumentError):
            MappingRegistry.from_document([])

    def test_non_object_mapping_is_fatal(self):
        with pytest.raises(DocumentError):
            MappingRegistry.from_document({"vendors": {"osmind": "g2"}})

    def test_load_registry_requires_file(self, tmp_path):
        with pytest.raises(DocumentError):
            load_registry(str(tmp_path / "vendor-mappings.json"))

    def test_load_registry_rejects_malformed_json(self, tmp_path):
        path = tmp_path / "vendor-mappings.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(DocumentError):
            load_registry(str(path))

    def test_load_registry_from_file(self, tmp_path):
        path = tmp_path / "vendor-mappings.json"
        path.write_text(json.dumps(DOC), encoding="utf-8")
        reg = load_registry(str(path))
        assert reg.resolve("capterra", "SPRUCE") == "spruce-health"


class TestValidateRegistry:
    """Validation gate for vendor-mappings.json"""

    def test_valid_document_has_no_errors(self):
        errors, warnings = validate_registry(DOC, ["osmind", "spruce-health", "no-sources"])
        assert errors == []
        assert any('"no-sources": has no' in w for w in warnings)

    def test_unknown_vendor_is_error(self):
        errors, _ = validate_registry(DOC, ["osmind", "spruce-health"])
        assert any("no-sources" in e and "no matching software file" in e for e in errors)

    def test_bad_url_is_error_and_foreign_domain_is_warning(self):
        doc = {
            "vendors": {
                "a": {"g2": {"slug": "a", "url": "not a url"}, "capterra": None},
                "b": {"g2": {"slug": "b", "url": "https://example.com/b"}, "capterra": None},
            }
        }
        errors, warnings = validate_registry(doc, ["a", "b"])
        assert errors == ['"a".g2.url must be a valid URL']
        assert warnings == ['"b".g2.url doesn\'t look like a g2 URL']

    def test_missing_slug_is_error(self):
        doc = {"vendors": {"a": {"g2": {"url": "https://www.g2.com/products/a"}}}}
        errors, _ = validate_registry(doc, ["a"])
        assert errors == ['"a".g2.slug must be a non-empty string']

    def test_unmapped_content_vendor_is_warning(self):
        errors, warnings = validate_registry({"vendors": {}}, ["orphan"])
        assert errors == []
        assert warnings == ['Software "orphan" has no mapping entry']

    def test_wrong_shape(self):
        errors, _ = validate_registry({"oops": 1}, [])
        assert len(errors) == 1
