import json

import httpx
import pytest


MAPPINGS = {
    "vendors": {
        "osmind": {
            "g2": {"slug": "osmind", "url": "https://www.g2.com/products/osmind/reviews"},
            "capterra": {"slug": "osmind", "url": "https://www.capterra.com/p/1/osmind/"},
        },
        "quiet-emr": {"g2": None, "capterra": None},
    }
}

G2_RAW = [
    {"productUrl": "https://www.g2.com/products/osmind/reviews", "rating": 4.0, "reviewCount": 10},
    {"productUrl": "https://www.g2.com/products/someone-else/reviews", "rating": 3.0, "reviewCount": 5},
]

CAPTERRA_RAW = [
    {"url": "https://www.capterra.com/p/1/Osmind/", "overallRating": 4.5, "reviewCount": 20},
]

SOFTWARE = {
    "osmind": {"slug": "osmind", "name": "Osmind", "website": "https://osmind.example"},
    "quiet-emr": {"slug": "quiet-emr", "name": "Quiet EMR", "website": "https://quiet.example"},
}

G2_DISCOVERED = [
    {"name": "Osmind", "website": "https://osmind.example"},
    {"name": "Beta EMR", "website": "https://beta.example", "description": "Ketamine clinic EHR"},
    {"name": "beta emr", "website": "https://www.beta.example/features"},
]

KETAMINE_PAGE = "<html><body>Ketamine ketamine KETAMINE esketamine Spravato psychiatry</body></html>"


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def site_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "quiet.example":
        raise httpx.ConnectError("connection refused", request=request)
    if request.method == "HEAD":
        return httpx.Response(200)
    if request.url.path == "/":
        return httpx.Response(200, text=KETAMINE_PAGE)
    return httpx.Response(404)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """A data dir + Content Store laid out the way the pipeline expects."""
    monkeypatch.setattr("directory_pipeline.context.get_redis", lambda: None)

    data_dir = tmp_path / "data"
    content_dir = tmp_path / "content" / "software"
    _write(data_dir / "reviews" / "vendor-mappings.json", MAPPINGS)
    _write(data_dir / "reviews" / "g2-raw.json", G2_RAW)
    _write(data_dir / "reviews" / "capterra-raw.json", CAPTERRA_RAW)
    _write(data_dir / "acquire" / "g2-discovered.json", G2_DISCOVERED)
    for slug, record in SOFTWARE.items():
        _write(content_dir / f"{slug}.json", record)
    return {
        "data_dir": data_dir,
        "content_dir": content_dir,
        "transport": httpx.MockTransport(site_handler),
    }
