"""LinkedIn Jobs scraper — public (logged-out) search result pages.

Search result markup:
    <ul class="jobs-search__results-list">
        <li>
            <a class="base-card__full-link" href="https://.../jobs/view/3812345678/">
            <h3 class="base-search-card__title">Job Title</h3>
            <h4 class="base-search-card__subtitle">Company</h4>
            <span class="job-search-card__location">City, Country</span>
            <time class="job-search-card__listed-time">2 days ago</time>
            <span class="job-search-card__benefits-insight">Actively hiring</span>
        </li>
    </ul>

LinkedIn throttles aggressively, hence the long default delay and low retry count.
"""

import logging
import re
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobaggregator.scrapers.base import BaseScraper, JobPosting, ScrapeResult
from jobaggregator.utils.text_processing import parse_posted_date

logger = logging.getLogger(__name__)

SEARCH_PATH = "/jobs/search"
JOBS_PER_PAGE = 25
# /jobs/view/3812345678 or /jobs/view/node-developer-at-acme-3812345678
JOB_ID_RE = re.compile(r"/jobs/view/(?:[^/?#]*-)?(\d+)")


class LinkedInJobsScraper(BaseScraper):
    name = "linkedin"
    defaults = {
        "base_url": "https://www.linkedin.com",
        "source": "LinkedIn Jobs",
        "timeout": 20.0,
        "max_retries": 2,
        "delay_between_requests": 3.0,
    }
    listing_selector = "li.jobs-search__results-list > div, ul.jobs-search__results-list > li"

    async def scrape(
        self, query: str = "", location: str = "", max_pages: int = 1
    ) -> ScrapeResult:
        logger.info(
            "[%s] Starting scrape with query: '%s', location: '%s'", self.source, query, location
        )
        self.reset()

        # Offset pagination: page N starts at N * 25
        return await self.paginate(
            lambda page: self.build_search_url(
                query=query, location=location, start=page * JOBS_PER_PAGE
            ),
            max_pages,
        )

    def build_search_url(self, query: str = "", location: str = "", start: int = 0) -> str:
        params: list[tuple[str, str | int]] = []
        if query:
            params.append(("keywords", query))
        if location:
            params.append(("location", location))
        if start > 0:
            params.append(("start", start))

        # Posted in the last 7 days
        params += [("f_TPR", "r604800"), ("position", "1"), ("pageNum", "0")]

        return f"{urljoin(self.base_url, SEARCH_PATH)}?{urlencode(params)}"

    def extract_job_data(self, doc: BeautifulSoup, element: Tag) -> JobPosting:
        title = self.extract_text(doc, ".base-search-card__title", element)
        company = self.extract_text(doc, ".base-search-card__subtitle", element)
        location = self.extract_text(doc, ".job-search-card__location", element)

        apply_link = self.extract_attribute(doc, "a.base-card__full-link", "href", element)
        if apply_link and not apply_link.startswith("http"):
            apply_link = urljoin(self.base_url, apply_link)

        id_match = JOB_ID_RE.search(apply_link)
        listed = self.extract_text(doc, ".job-search-card__listed-time", element)

        job = JobPosting(
            title=title,
            company=company,
            location=location,
            # Search cards carry no description
            description=f"Posted {listed}",
            apply_link=apply_link or self.base_url,
            tags=self.extract_tags(element),
            posted_at=self.parse_posted_date(listed),
            source=self.source,
        )
        job.external_id = (
            f"linkedin-{id_match.group(1)}" if id_match else self.generate_external_id(job)
        )
        return job

    def extract_tags(self, element: Tag) -> list[str]:
        tags = []
        for insight in element.select(".job-search-card__benefits-insight"):
            text = insight.get_text(" ", strip=True)
            if text:
                tags.append(text)
        return tags

    def parse_posted_date(self, text: str):
        """'2 days ago', '1 week ago' -> datetime; unparseable -> now."""
        return parse_posted_date(text)
