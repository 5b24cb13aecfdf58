# tests/test_base_scraper.py
import asyncio
import sqlite3
from datetime import datetime, timezone
from unittest import mock

import httpx
import pytest

from conftest import DummyScraper, RecordingTransport, job_card, results_page, valid_job
from jobaggregator.scrapers import base
from jobaggregator.scrapers.base import BaseScraper, FetchError, JobPosting, SaveStats


# ----------------------------------------------------------------------
# Construction / config
# ----------------------------------------------------------------------
def test_base_scraper_is_abstract():
    with pytest.raises(TypeError):
        BaseScraper()


def test_subclass_without_scrape_is_not_instantiable():
    class Incomplete(BaseScraper):
        pass

    with pytest.raises(TypeError):
        Incomplete()


def test_defaults_and_overrides():
    scraper = DummyScraper({"timeout": 2.5, "unknown_key": 1})

    assert scraper.base_url == "https://example.com"
    assert scraper.source == "Test Scraper"
    assert scraper.config.timeout == 2.5
    assert scraper.config.max_retries == 3
    assert scraper.jobs == []
    assert scraper.errors == []


def test_config_is_immutable():
    scraper = DummyScraper()
    with pytest.raises(AttributeError):
        scraper.config.timeout = 99


# ----------------------------------------------------------------------
# Cleaning / validation / IDs
# ----------------------------------------------------------------------
def test_clean_text_collapses_whitespace():
    scraper = DummyScraper()
    assert scraper.clean_text("  Test   text\n\nwith   spaces  ") == "Test text with spaces"
    assert scraper.clean_text("") == ""
    assert scraper.clean_text(None) == ""


def test_clean_job_data_normalizes_fields():
    scraper = DummyScraper()
    raw = JobPosting(
        title="  Software Engineer  ",
        company="  Tech Corp\n  ",
        location="San Francisco  ",
        description="Great\n\nopportunity",
        apply_link="  https://example.com/job ",
        external_id="job-123",
        tags=["remote", "full-time", None, ""],
        posted_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    cleaned = scraper.clean_job_data(raw)

    assert cleaned.title == "Software Engineer"
    assert cleaned.company == "Tech Corp"
    assert cleaned.location == "San Francisco"
    assert cleaned.description == "Great opportunity"
    assert cleaned.apply_link == "https://example.com/job"
    assert cleaned.source == "Test Scraper"
    assert cleaned.tags == ["remote", "full-time"]
    assert cleaned.external_id == "job-123"
    assert cleaned.posted_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_clean_job_data_fills_missing_id_and_date():
    scraper = DummyScraper()
    cleaned = scraper.clean_job_data(
        JobPosting(title="Developer", company="Company", location="Loc", apply_link="https://x")
    )

    assert cleaned.external_id.startswith("test-scraper-company-developer-")
    assert cleaned.posted_at is not None


def test_validate_job_data():
    scraper = DummyScraper()
    assert scraper.validate_job_data(valid_job(source="Test")) is True

    for missing in ("title", "company", "location", "apply_link", "source"):
        job = valid_job(**{"source": "Test", missing: ""})
        assert scraper.validate_job_data(job) is False, missing


def test_generate_external_id_prefix_is_stable_suffix_is_not(monkeypatch):
    scraper = DummyScraper()
    job = JobPosting(title="Senior   Software Engineer", company="Tech Corp")

    ticks = iter([1_700_000_000_000, 1_700_000_000_001])
    monkeypatch.setattr(base, "_now_millis", lambda: next(ticks))

    first = scraper.generate_external_id(job)
    second = scraper.generate_external_id(job)

    assert first == "test-scraper-tech-corp-senior-software-engineer-1700000000000"
    assert second == "test-scraper-tech-corp-senior-software-engineer-1700000000001"
    assert first != second


def test_generate_external_id_truncates_and_defaults():
    scraper = DummyScraper()
    job = JobPosting(title="t" * 80, company="c" * 40)
    _, company, title, _ = scraper.generate_external_id(job).rsplit("-", 3)
    assert company == "c" * 30
    assert title == "t" * 50

    assert "-unknown-unknown-" in scraper.generate_external_id(JobPosting())


# ----------------------------------------------------------------------
# Extraction helpers
# ----------------------------------------------------------------------
def test_extract_helpers_never_raise():
    scraper = DummyScraper()
    doc = scraper.parse(results_page(job_card("1", title="Dev")))
    card = doc.select_one("div.job")

    assert scraper.extract_text(doc, ".title", card) == "Dev"
    assert scraper.extract_text(doc, ".missing", card) == ""
    assert scraper.extract_text(doc, "::not-a-selector((", card) == ""
    assert scraper.extract_text(doc, "p::before", card) == ""
    assert scraper.extract_attribute(doc, "a::after", "href", card) == ""
    assert scraper.extract_attribute(doc, "a", "href", card) == "https://example.com/jobs/1"
    assert scraper.extract_attribute(doc, "a", "data-nope", card) == ""
    assert scraper.extract_attribute(doc, "img", "src") == ""


def test_extract_text_does_not_repeat_nested_matches():
    scraper = DummyScraper()
    doc = scraper.parse('<div class="description"><p>Hola</p></div>')
    assert scraper.extract_text(doc, ".description, p") == "Hola"


def test_broken_card_is_skipped_and_recorded(monkeypatch):
    scraper = DummyScraper()
    doc = scraper.parse(results_page(job_card("1"), job_card("2"), job_card("3")))
    original = DummyScraper.extract_job_data

    def flaky(self, doc, element):
        if element.get("data-id") == "2":
            raise ValueError("bad card")
        return original(self, doc, element)

    monkeypatch.setattr(DummyScraper, "extract_job_data", flaky)

    jobs = scraper.extract_jobs_from_page(doc)

    assert [job.external_id for job in jobs] == ["1", "3"]
    assert scraper.errors == [{"context": "extract[1]", "message": "bad card"}]


def test_cards_without_title_or_company_are_dropped():
    scraper = DummyScraper()
    doc = scraper.parse(results_page(job_card("1", title=""), job_card("2", company="")))
    assert scraper.extract_jobs_from_page(doc) == []


# ----------------------------------------------------------------------
# Fetching
# ----------------------------------------------------------------------
def test_fetch_sends_browser_headers(pages_transport):
    transport = pages_transport("<html>ok</html>")
    scraper = DummyScraper({"user_agent": "TestAgent/1.0"}, transport=transport)

    html = asyncio.run(scraper.fetch_with_retry("https://example.com/jobs"))

    assert html == "<html>ok</html>"
    headers = transport.requests[0].headers
    assert headers["user-agent"] == "TestAgent/1.0"
    assert headers["accept-language"] == "en-US,en;q=0.5"
    assert "text/html" in headers["accept"]


def test_fetch_retries_then_raises_fetch_error(failing_transport):
    scraper = DummyScraper({"max_retries": 3}, transport=failing_transport)

    with pytest.raises(FetchError) as excinfo:
        asyncio.run(scraper.fetch_with_retry("https://example.com/down"))

    assert len(failing_transport.requests) == 3
    assert excinfo.value.url == "https://example.com/down"
    assert "after 3 attempts" in str(excinfo.value)
    assert "connection refused" in str(excinfo.value)


def test_retry_waits_grow_linearly(failing_transport):
    scraper = DummyScraper(
        {"max_retries": 4, "delay_between_requests": 1.5}, transport=failing_transport
    )
    scraper.delay = mock.AsyncMock()

    with pytest.raises(FetchError):
        asyncio.run(scraper.fetch_with_retry("https://example.com/down"))

    assert len(failing_transport.requests) == 4
    assert [c.args[0] for c in scraper.delay.await_args_list] == [1.5, 3.0, 4.5]


def test_fetch_recovers_after_transient_error():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, text="<html>fine</html>")

    scraper = DummyScraper(transport=RecordingTransport(handler))
    assert asyncio.run(scraper.fetch_with_retry("https://example.com")) == "<html>fine</html>"
    assert calls["n"] == 2


# ----------------------------------------------------------------------
# Saving
# ----------------------------------------------------------------------
def test_save_jobs_empty_input_touches_nothing():
    store = mock.Mock()
    scraper = DummyScraper(repo=store)

    assert asyncio.run(scraper.save_jobs([])) == SaveStats()
    store.upsert_job.assert_not_called()


def test_save_twice_overwrites_and_counts_duplicate(repo):
    scraper = DummyScraper(repo=repo)

    first = asyncio.run(scraper.save_jobs([valid_job(title="Engineer")]))
    second = asyncio.run(scraper.save_jobs([valid_job(title="Senior Engineer", tags=[])]))

    assert first == SaveStats(saved=1, duplicates=0, failed=0, total=1)
    assert second == SaveStats(saved=0, duplicates=1, failed=0, total=1)
    assert repo.count_jobs() == 1

    stored = repo.get_job_by_external_id("job-123")
    assert stored["title"] == "Senior Engineer"
    assert stored["tags"] == []
    assert stored["source"] == "Test Scraper"


def test_invalid_jobs_count_as_failed_without_touching_store():
    store = mock.Mock()
    scraper = DummyScraper(repo=store)

    stats = asyncio.run(scraper.save_jobs([valid_job(location=""), valid_job(apply_link="")]))

    assert stats == SaveStats(saved=0, duplicates=0, failed=2, total=2)
    store.upsert_job.assert_not_called()
    assert scraper.errors == []


def test_persistence_error_is_contained():
    store = mock.Mock()
    store.upsert_job.side_effect = [sqlite3.OperationalError("disk I/O error"), mock.DEFAULT]
    store.upsert_job.return_value = mock.Mock(inserted_new=True, matched_existing=False)
    scraper = DummyScraper(repo=store)

    stats = asyncio.run(
        scraper.save_jobs([valid_job(external_id="a"), valid_job(external_id="b")])
    )

    assert stats == SaveStats(saved=1, duplicates=0, failed=1, total=2)
    assert len(scraper.errors) == 1
    assert scraper.errors[0]["context"] == "save"
    assert scraper.errors[0]["message"] == "disk I/O error"
    assert scraper.errors[0]["job"]["external_id"] == "a"


def test_save_defaults_to_accumulated_jobs(repo):
    scraper = DummyScraper(repo=repo)
    scraper.jobs = [valid_job(external_id="a"), valid_job(external_id="b")]

    assert asyncio.run(scraper.save_jobs()).saved == 2


# ----------------------------------------------------------------------
# Page loop scenarios
# ----------------------------------------------------------------------
def test_empty_first_page_returns_zeroed_success(pages_transport, repo):
    transport = pages_transport(results_page())
    scraper = DummyScraper(repo=repo, transport=transport)

    result = asyncio.run(scraper.scrape(max_pages=1))

    assert result.success is True
    assert result.jobs == []
    assert result.stats == SaveStats(saved=0, duplicates=0, failed=0, total=0)


def test_pagination_stops_at_first_empty_page(pages_transport, repo):
    transport = pages_transport(
        results_page(job_card("1"), job_card("2")),
        results_page(),
        results_page(job_card("3")),
    )
    scraper = DummyScraper(repo=repo, transport=transport)

    result = asyncio.run(scraper.scrape(max_pages=5))

    assert len(transport.requests) == 2
    assert [job.external_id for job in result.jobs] == ["1", "2"]
    assert result.stats.saved == 2


def test_delay_only_between_pages(pages_transport, repo):
    transport = pages_transport(
        results_page(job_card("1")), results_page(job_card("2")), results_page(job_card("3"))
    )
    scraper = DummyScraper({"delay_between_requests": 0.25}, repo=repo, transport=transport)
    scraper.delay = mock.AsyncMock()

    asyncio.run(scraper.scrape(max_pages=3))

    assert scraper.delay.await_count == 2
    scraper.delay.assert_awaited_with(0.25)


def test_fetch_failure_mid_run_reports_partial_jobs_and_saves_nothing(repo):

    def handler(request):
        if request.url.params["page"] == "1":
            return httpx.Response(200, text=results_page(job_card("1")))
        raise httpx.ReadTimeout("timed out", request=request)

    transport = RecordingTransport(handler)
    scraper = DummyScraper({"max_retries": 2}, repo=repo, transport=transport)

    result = asyncio.run(scraper.scrape(max_pages=3))

    assert result.success is False
    assert [job.external_id for job in result.jobs] == ["1"]
    assert result.stats == SaveStats()
    assert result.errors[-1]["context"] == "scrape"
    assert "Failed to fetch" in result.errors[-1]["message"]
    assert len(transport.requests) == 3
    assert repo.count_jobs() == 0


def test_scrape_resets_previous_state(pages_transport, repo):
    scraper = DummyScraper(repo=repo, transport=pages_transport(results_page(job_card("9"))))
    scraper.jobs = [valid_job()]
    scraper.errors = [{"context": "old", "message": "old"}]

    result = asyncio.run(scraper.scrape())

    assert [job.external_id for job in result.jobs] == ["9"]
    assert result.errors == []


def test_get_stats_and_reset():
    scraper = DummyScraper()
    scraper.jobs = [valid_job()]
    scraper.errors = [{"context": "x", "message": "y"}]

    stats = scraper.get_stats()
    assert stats["source"] == "Test Scraper"
    assert stats["total_jobs"] == 1
    assert stats["total_errors"] == 1

    scraper.reset()
    assert scraper.jobs == [] and scraper.errors == []
