# tests/conftest.py
from collections.abc import Callable

import httpx
import pytest

from jobaggregator.db.models import init_db
from jobaggregator.db.repository import JobRepository
from jobaggregator.scrapers.base import BaseScraper, JobPosting, ScrapeResult


# ---------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------
@pytest.fixture
def repo(tmp_path):
    conn = init_db(str(tmp_path / "jobs.db"))
    yield JobRepository(conn)
    conn.close()


# ---------------------------------------------------------------------
# HTTP: route every request through a handler, record what was asked for
# ---------------------------------------------------------------------
class RecordingTransport(httpx.MockTransport):
    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def pages_transport():
    """Serve the given HTML bodies in order; anything past the list is an empty page."""

    def _make(*bodies: str) -> RecordingTransport:
        remaining = list(bodies)

        def handler(request: httpx.Request) -> httpx.Response:
            body = remaining.pop(0) if remaining else "<html><body></body></html>"
            return httpx.Response(200, text=body)

        return RecordingTransport(handler)

    return _make


@pytest.fixture
def failing_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return RecordingTransport(handler)


# ---------------------------------------------------------------------
# A minimal concrete scraper over a trivial markup
# ---------------------------------------------------------------------
class DummyScraper(BaseScraper):
    name = "dummy"
    defaults = {
        "base_url": "https://example.com",
        "source": "Test Scraper",
        "timeout": 5.0,
        "delay_between_requests": 0,
    }
    listing_selector = "div.job"

    async def scrape(self, query="", location="", max_pages=1) -> ScrapeResult:
        self.reset()
        return await self.paginate(
            lambda page: f"{self.base_url}/jobs?q={query}&page={page + 1}", max_pages
        )

    def extract_job_data(self, doc, element) -> JobPosting:
        return JobPosting(
            title=self.extract_text(doc, ".title", element),
            company=self.extract_text(doc, ".company", element),
            location=self.extract_text(doc, ".location", element),
            apply_link=self.extract_attribute(doc, "a", "href", element),
            external_id=element.get("data-id", ""),
        )


def job_card(job_id: str, title: str = "Engineer", company: str = "Acme") -> str:
    return (
        f'<div class="job" data-id="{job_id}">'
        f'<span class="title">{title}</span>'
        f'<span class="company">{company}</span>'
        f'<span class="location">Remote</span>'
        f'<a href="https://example.com/jobs/{job_id}">Apply</a>'
        f"</div>"
    )


def results_page(*cards: str) -> str:
    return f"<html><body>{''.join(cards)}</body></html>"


@pytest.fixture
def dummy_scraper_cls():
    return DummyScraper


def valid_job(**overrides) -> JobPosting:
    data = {
        "title": "Software Engineer",
        "company": "Tech Corp",
        "location": "San Francisco",
        "description": "Great opportunity",
        "apply_link": "https://example.com/job",
        "external_id": "job-123",
        "tags": ["remote"],
    }
    data.update(overrides)
    return JobPosting(**data)
