"""Base scraper class and the JobPosting data model.

Concrete scrapers supply URL building and selector-driven field extraction;
everything else lives here:

    fetch_with_retry   GET with browser-like headers, linear backoff (tenacity)
    parse              BeautifulSoup/lxml document with CSS selector support
    paginate           page loop: fetch, extract, stop on an empty page, save
    save_jobs          clean, validate, upsert by external_id, count outcomes
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from jobaggregator.db.repository import JobRepository
from jobaggregator.utils.text_processing import clean_text, slugify

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "company", "location", "apply_link", "source")


@dataclass
class JobPosting:
    """Standardized job data from any source."""

    title: str = ""
    company: str = ""
    location: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    external_id: str = ""
    source: str = ""
    apply_link: str = ""
    posted_at: datetime | None = None

    def to_record(self) -> dict:
        """Fields written to the job store (everything but the key)."""
        record = asdict(self)
        record.pop("external_id")
        return record


@dataclass
class SaveStats:
    saved: int = 0
    duplicates: int = 0
    failed: int = 0
    total: int = 0


@dataclass
class ScrapeResult:
    success: bool
    jobs: list[JobPosting]
    stats: SaveStats
    errors: list[dict]


@dataclass(frozen=True)
class ScraperConfig:
    """Per-instance scraper settings. Durations are in seconds."""

    base_url: str = ""
    source: str = "Unknown"
    timeout: float = 10.0
    max_retries: int = 3
    delay_between_requests: float = 1.0
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

    @classmethod
    def from_dict(cls, *layers: dict | None) -> "ScraperConfig":
        """Build from dict layers, later layers overriding earlier ones."""
        known = {f.name for f in fields(cls)}
        values: dict = {}
        for layer in layers:
            for key, value in (layer or {}).items():
                if key in known:
                    values[key] = value
                else:
                    logger.debug("Ignoring unknown scraper config key: %s", key)
        return cls(**values)


class FetchError(Exception):
    """Raised when a page could not be fetched within the retry budget."""

    def __init__(self, url: str, attempts: int, last_error: BaseException | None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to fetch {url} after {attempts} attempts: {last_error}")


class BaseScraper(ABC):
    """Abstract base class for all job board scrapers."""

    # Registry identifier, e.g. "linkedin"
    name: str = ""
    # Site-specific defaults layered under the caller's config
    defaults: dict = {}
    # CSS selector matching one listing card on a results page
    listing_selector: str = ""

    def __init__(
        self,
        config: dict | None = None,
        repo: JobRepository | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = ScraperConfig.from_dict(self.defaults, config)
        self.repo = repo
        self.transport = transport

        self.jobs: list[JobPosting] = []
        self.errors: list[dict] = []

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def source(self) -> str:
        return self.config.source

    @abstractmethod
    async def scrape(
        self, query: str = "", location: str = "", max_pages: int = 1
    ) -> ScrapeResult:
        """Run a search across result pages, persist, and report."""
        ...

    # ── Fetching ───────────────────────────────────────────────────

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        }

    async def _get(self, url: str) -> str:
        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=self.config.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.text

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            "[%s] Attempt %d/%d failed: %s",
            self.source,
            retry_state.attempt_number,
            self.config.max_retries,
            retry_state.outcome.exception(),
        )

    async def fetch_with_retry(self, url: str) -> str:
        """GET a page, retrying with a linearly growing pause between attempts."""
        attempts = max(1, self.config.max_retries)
        step = self.config.delay_between_requests
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=step, increment=step),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=self._log_retry,
            sleep=self.delay,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    logger.info(
                        "[%s] Fetching: %s (attempt %d/%d)",
                        self.source, url, attempt.retry_state.attempt_number, attempts,
                    )
                    return await self._get(url)
        except RetryError as e:
            raise FetchError(url, attempts, e.last_attempt.exception()) from e

    def parse(self, html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "lxml")

    async def fetch_and_parse(self, url: str) -> BeautifulSoup:
        html = await self.fetch_with_retry(url)
        return self.parse(html)

    # ── Extraction helpers ─────────────────────────────────────────

    def _select(self, doc: Tag, selector: str, context: Tag | None) -> list[Tag]:
        scope = context if context is not None else doc
        try:
            return scope.select(selector)
        except (SelectorSyntaxError, NotImplementedError):
            logger.debug("[%s] Bad selector: %s", self.source, selector)
            return []

    def extract_text(self, doc: Tag, selector: str, context: Tag | None = None) -> str:
        """Text of every match (joined), or "" when nothing matches."""
        matches = self._select(doc, selector, context)
        # Skip matches nested inside another match so their text isn't repeated
        matched = {id(el) for el in matches}
        outermost = [el for el in matches if not any(id(p) in matched for p in el.parents)]
        return " ".join(el.get_text(" ", strip=True) for el in outermost).strip()

    def extract_attribute(
        self, doc: Tag, selector: str, attribute: str, context: Tag | None = None
    ) -> str:
        """Attribute of the first match, or ""."""
        matches = self._select(doc, selector, context)
        if not matches:
            return ""
        value = matches[0].get(attribute)
        if isinstance(value, list):
            value = " ".join(value)
        return value or ""

    def extract_jobs_from_page(self, doc: BeautifulSoup) -> list[JobPosting]:
        """Extract every listing card; a broken card is logged and skipped."""
        jobs = []
        cards = self._select(doc, self.listing_selector, None)

        if not cards:
            logger.warning(
                "[%s] No job cards found. Page structure may have changed.", self.source
            )

        for index, card in enumerate(cards):
            try:
                job = self.extract_job_data(doc, card)
            except Exception as e:
                logger.error("[%s] Error extracting job %d: %s", self.source, index, e)
                self.errors.append({"context": f"extract[{index}]", "message": str(e)})
                continue

            if job and job.title and job.company:
                jobs.append(job)

        return jobs

    def extract_job_data(self, doc: BeautifulSoup, element: Tag) -> JobPosting:
        raise NotImplementedError(f"{type(self).__name__} does not extract listing cards")

    # ── Page loop ──────────────────────────────────────────────────

    async def paginate(
        self, url_for_page: Callable[[int], str], max_pages: int
    ) -> ScrapeResult:
        """Walk result pages in order, then persist what was collected.

        Stops at the first page without listings. A failure anywhere in the
        loop returns the partial jobs with zeroed stats and saves nothing.
        """
        try:
            for page in range(max_pages):
                logger.info("[%s] Scraping page %d/%d", self.source, page + 1, max_pages)

                doc = await self.fetch_and_parse(url_for_page(page))
                page_jobs = self.extract_jobs_from_page(doc)

                if not page_jobs:
                    logger.info("[%s] No more jobs found on page %d", self.source, page + 1)
                    break

                self.jobs.extend(page_jobs)

                if page < max_pages - 1:
                    await self.delay(self.config.delay_between_requests)

            logger.info("[%s] Scraping complete. Found %d jobs", self.source, len(self.jobs))
            stats = await self.save_jobs()
            return ScrapeResult(success=True, jobs=self.jobs, stats=stats, errors=self.errors)

        except Exception as e:
            logger.error("[%s] Scraping failed: %s", self.source, e)
            self.errors.append({"context": "scrape", "message": str(e)})
            return ScrapeResult(
                success=False, jobs=self.jobs, stats=SaveStats(), errors=self.errors
            )

    # ── Cleaning / validation ──────────────────────────────────────

    def clean_text(self, text: str | None) -> str:
        return clean_text(text)

    def clean_job_data(self, job: JobPosting) -> JobPosting:
        return replace(
            job,
            title=self.clean_text(job.title),
            company=self.clean_text(job.company),
            location=self.clean_text(job.location),
            description=self.clean_text(job.description),
            source=self.source,
            apply_link=(job.apply_link or "").strip(),
            external_id=job.external_id or self.generate_external_id(job),
            tags=[tag for tag in (job.tags or []) if tag],
            posted_at=job.posted_at or datetime.now(timezone.utc),
        )

    def validate_job_data(self, job: JobPosting) -> bool:
        missing = [name for name in REQUIRED_FIELDS if not getattr(job, name, None)]
        if missing:
            logger.warning(
                "[%s] Invalid job data - missing fields: %s", self.source, ", ".join(missing)
            )
            return False
        return True

    def generate_external_id(self, job: JobPosting) -> str:
        """Synthesize an ID for listings without a stable site ID.

        The millisecond suffix makes this unique per call, so re-scraping such
        a listing stores a new row rather than updating the old one.
        """
        source = slugify(self.source)
        company = slugify(job.company)[:30] or "unknown"
        title = slugify(job.title)[:50] or "unknown"
        return f"{source}-{company}-{title}-{_now_millis()}"

    # ── Persistence ────────────────────────────────────────────────

    async def save_jobs(self, jobs: list[JobPosting] | None = None) -> SaveStats:
        jobs_to_save = self.jobs if jobs is None else jobs

        if not jobs_to_save:
            logger.info("[%s] No jobs to save", self.source)
            return SaveStats()

        stats = SaveStats(total=len(jobs_to_save))

        for job in jobs_to_save:
            try:
                cleaned = self.clean_job_data(job)

                if not self.validate_job_data(cleaned):
                    stats.failed += 1
                    continue

                if self.repo is None:
                    raise RuntimeError("No job store configured")

                result = self.repo.upsert_job(cleaned.external_id, cleaned.to_record())
                if result.inserted_new:
                    stats.saved += 1
                elif result.matched_existing:
                    stats.duplicates += 1
            except Exception as e:
                logger.error("[%s] Error saving job: %s", self.source, e)
                stats.failed += 1
                self.errors.append({"context": "save", "job": asdict(job), "message": str(e)})

        logger.info(
            "[%s] Results: %d saved, %d duplicates, %d failed",
            self.source, stats.saved, stats.duplicates, stats.failed,
        )
        return stats

    # ── Misc ───────────────────────────────────────────────────────

    async def delay(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def get_stats(self) -> dict:
        return {
            "source": self.source,
            "total_jobs": len(self.jobs),
            "total_errors": len(self.errors),
            "errors": self.errors,
        }

    def reset(self) -> None:
        self.jobs = []
        self.errors = []


def _now_millis() -> int:
    return int(time.time() * 1000)
