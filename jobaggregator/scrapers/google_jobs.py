"""Google Jobs fetcher — one-shot aggregator query via SerpApi.

Unlike the HTML scrapers this makes a single request per query: no paging,
no retries. Listings are upserted by Google's own job_id.
"""

import logging
from datetime import datetime, timezone

import requests

from jobaggregator.db.repository import JobRepository
from jobaggregator.scrapers.base import JobPosting
from jobaggregator.utils.text_processing import clean_text

logger = logging.getLogger(__name__)

API_URL = "https://serpapi.com/search.json"
DEFAULT_QUERY = "software developer"


def normalize_job(item: dict) -> JobPosting:
    """Map a SerpApi google_jobs result onto the common job shape."""
    related = item.get("related_links") or []
    apply_link = (related[0].get("link") if related else None) or item.get("share_link") or ""

    return JobPosting(
        title=clean_text(item.get("title")),
        company=clean_text(item.get("company_name")),
        location=clean_text(item.get("location")),
        description=item.get("description") or "",
        # e.g. "via LinkedIn"
        source=item.get("via") or "Unknown",
        apply_link=apply_link,
        external_id=item.get("job_id") or "",
        tags=[tag for tag in (item.get("extensions") or []) if tag],
        posted_at=datetime.now(timezone.utc),
    )


class GoogleJobsFetcher:
    """Fetches Google Jobs results and stores them in the job repository."""

    def __init__(self, config: dict, repo: JobRepository):
        self.config = config
        self.repo = repo
        self.api_key = config.get("api_keys", {}).get("serpapi", "")
        self.timeout = config.get("google_jobs", {}).get("timeout", 30)

    def is_available(self) -> bool:
        return bool(self.api_key)

    def fetch(self, query: str) -> list[dict]:
        params = {
            "engine": "google_jobs",
            "q": query,
            "hl": "en",
            "api_key": self.api_key,
        }
        resp = requests.get(API_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json().get("jobs_results", [])

    def fetch_and_store(self, query: str = DEFAULT_QUERY) -> dict:
        """Search, then upsert every usable result. Returns found/new counts."""
        logger.info("[Google Jobs] Searching for: %s", query)

        raw_jobs = self.fetch(query)
        logger.info("[Google Jobs] Found %d jobs", len(raw_jobs))

        new_count = 0
        for item in raw_jobs:
            job = normalize_job(item)
            if not (job.external_id and job.title and job.company and job.location and job.apply_link):
                logger.warning("[Google Jobs] Skipping incomplete result: %s", job.title or item.get("job_id"))
                continue

            result = self.repo.upsert_job(job.external_id, job.to_record())
            if result.inserted_new:
                new_count += 1

        logger.info("[Google Jobs] Database updated. %d new jobs added.", new_count)
        return {"found": len(raw_jobs), "new": new_count}
