# tests/test_sources.py
import pytest

from modules.job_search.lib import sources
from modules.job_search.lib.models import Location
from modules.job_search.lib.sources.base import Source, SourceError
from modules.job_search.lib.sources.headhunter import HeadHunterSource
from modules.job_search.lib.sources.linkedin import LinkedInSource
from modules.job_search.lib.sources.remoteok import RemoteOKSource
from modules.job_search.lib.sources.stub import StubSource


class FakeClient:
    """Scripted HttpClient.get_json: a list of responses (or exceptions), consumed in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get_json(self, url, *, params=None, headers=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------
def test_builtin_sources_are_registered():
    assert {"remoteok", "headhunter", "linkedin", "stub"} <= set(sources.all_sources())
    assert sources.get("RemoteOK") is RemoteOKSource


def test_create_passes_params():
    src = sources.create("headhunter", {"max_pages": 2, "page_delay_ms": 250})
    assert isinstance(src, HeadHunterSource)
    assert src.max_pages == 2
    assert src.page_delay == 0.25
    assert isinstance(src, Source)


def test_unknown_source_raises_keyerror():
    with pytest.raises(KeyError):
        sources.create("monster")


def test_register_rejects_conflicting_factory():
    with pytest.raises(ValueError):

        @sources.register("remoteok")
        class Other:
            pass


# ---------------------------------------------------------------------
# Stub
# ---------------------------------------------------------------------
def test_stub_returns_items_and_skips_missing_ids():
    src = StubSource(items=[{"id": "1", "title": "A"}, {"title": "no id"}, "junk", {"id": 2}], label="demo")
    got = src.fetch([], Location())
    assert [(p.source, p.external_id, p.title) for p in got] == [("demo", "1", "A"), ("demo", "2", "(no title)")]


def test_stub_error():
    with pytest.raises(SourceError, match="boom"):
        StubSource(error="boom").fetch([], Location())


# ---------------------------------------------------------------------
# RemoteOK
# ---------------------------------------------------------------------
REMOTEOK_PAYLOAD = [
    {"legal": "API terms"},
    {
        "id": "101",
        "slug": "python-dev-acme",
        "position": "Python Developer",
        "company": "Acme",
        "description": "<p>Build <b>Django</b> services</p>",
        "tags": ["python", "django"],
        "location": "Worldwide",
        "url": "https://remoteok.com/l/101",
        "date": "2025-01-01T00:00:00+00:00",
    },
    {"id": "102", "position": "Java Engineer", "company": "Beta", "tags": ["java"], "location": "Germany"},
    {"slug": "go-dev", "position": "Go Developer", "tags": ["golang", "python"], "location": "Berlin, Germany"},
]


def test_remoteok_filters_by_keywords_and_maps_fields():
    client = FakeClient(REMOTEOK_PAYLOAD)
    got = RemoteOKSource(client=client).fetch(["Python"], Location())

    assert [p.external_id for p in got] == ["101", "go-dev"]
    first = got[0]
    assert first.source == "remoteok"
    assert first.title == "Python Developer"
    assert first.description == "Build Django services"
    assert first.tags == ("python", "django")
    assert first.posted_at == "2025-01-01T00:00:00+00:00"
    assert got[1].url == "https://remoteok.com/remote-jobs/go-dev"
    assert got[1].company == "Unknown"


def test_remoteok_location_filter():
    got = RemoteOKSource(client=FakeClient(REMOTEOK_PAYLOAD)).fetch(["python"], Location(country="Germany"))
    assert [p.external_id for p in got] == ["go-dev"]


def test_remoteok_rejects_unexpected_shape():
    with pytest.raises(SourceError):
        RemoteOKSource(client=FakeClient({"error": "nope"})).fetch(["python"], Location())


def test_remoteok_propagates_transport_errors():
    with pytest.raises(ConnectionError):
        RemoteOKSource(client=FakeClient(ConnectionError("down"))).fetch(["python"], Location())


# ---------------------------------------------------------------------
# HeadHunter
# ---------------------------------------------------------------------
def _hh_page(ids, pages=3):
    return {
        "found": 250,
        "pages": pages,
        "items": [
            {
                "id": str(i),
                "name": f"Backend {i}",
                "employer": {"name": "HH Co"},
                "alternate_url": f"https://hh.ru/vacancy/{i}",
                "area": {"name": "Moscow"},
                "snippet": {"requirement": "<highlighttext>Python</highlighttext> 3+ years", "responsibility": None},
                "published_at": "2025-01-01T10:00:00+0300",
                "professional_roles": [{"name": "Programmer"}],
            }
            for i in ids
        ],
    }


def test_headhunter_builds_query_and_paginates():
    client = FakeClient(_hh_page([1, 2]), _hh_page([3]), _hh_page([4]))
    got = HeadHunterSource(max_pages=5, client=client).fetch(["Python", "Go"], Location(city="Moscow", remote=True))

    assert [p.external_id for p in got] == ["1", "2", "3", "4"]
    assert len(client.calls) == 3  # capped by "pages": 3
    params = client.calls[0][1]
    assert params["text"] == "Python OR Go"
    assert params["area"] == 1
    assert params["schedule"] == "remote"
    assert params["search_field"] == "name"
    assert [c[1]["page"] for c in client.calls] == [0, 1, 2]

    p = got[0]
    assert p.company == "HH Co"
    assert p.location == "Moscow"
    assert p.description.startswith("Python 3+ years")
    assert p.tags == ("Programmer",)


def test_headhunter_respects_max_pages():
    client = FakeClient(_hh_page([1], pages=10), _hh_page([2], pages=10))
    got = HeadHunterSource(max_pages=2, client=client).fetch(["Python"], Location())
    assert len(got) == 2
    assert len(client.calls) == 2
    assert "area" not in client.calls[0][1]


def test_headhunter_first_page_failure_raises():
    with pytest.raises(SourceError):
        HeadHunterSource(client=FakeClient(ConnectionError("timeout"))).fetch(["Python"], Location())


def test_headhunter_later_page_failure_keeps_partial_results():
    client = FakeClient(_hh_page([1, 2]), ConnectionError("timeout"))
    got = HeadHunterSource(client=client).fetch(["Python"], Location())
    assert [p.external_id for p in got] == ["1", "2"]


# ---------------------------------------------------------------------
# LinkedIn
# ---------------------------------------------------------------------
def test_linkedin_placeholder_returns_nothing():
    assert LinkedInSource(anything=1).fetch(["Python"], Location()) == []
