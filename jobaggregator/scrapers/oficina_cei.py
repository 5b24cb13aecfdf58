"""Oficina de Trabajo CEI scraper — Chilean public employment office listings.

The portal renders server-side and has changed markup several times, so each
field is read from a group of selectors covering the layouts seen so far
(.job-listing / .job-card / article.job / .vacancy-item cards).
"""

import logging
import re
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from jobaggregator.scrapers.base import BaseScraper, JobPosting, ScrapeResult
from jobaggregator.utils.text_processing import parse_posted_date, slugify, strip_phrases

logger = logging.getLogger(__name__)

SEARCH_PATH = "/buscar-empleo"
JOB_ID_RE = re.compile(r"/job/(\d+)|/id/(\d+)|id=(\d+)")

TITLE_SELECTOR = ".job-title, h2, h3, .position-title"
COMPANY_SELECTOR = ".company-name, .employer, .company"
LOCATION_SELECTOR = ".job-location, .location, .place"
DESCRIPTION_SELECTOR = ".job-description, .description, .summary, p"
LINK_SELECTOR = "a.job-link, a.apply-btn, a"
TAG_SELECTOR = ".tag, .badge, .job-type, .salary, .schedule"
DATE_SELECTOR = ".posted-date, .date, time, .publish-date"

# Share/apply widget text that ends up inside the description block
BOILERPLATE_PHRASES = ["Compartir en redes sociales", "Aplicar ahora"]


class OficinaDeTrabajoCeiScraper(BaseScraper):
    name = "oficina-trabajo-cei"
    defaults = {
        "base_url": "https://www.oficinaempleo.cl",
        "source": "Oficina de Trabajo CEI",
        "timeout": 15.0,
        "max_retries": 3,
        "delay_between_requests": 2.0,
    }
    listing_selector = ".job-listing, .job-card, article.job, .vacancy-item"

    async def scrape(
        self, query: str = "", location: str = "", max_pages: int = 1
    ) -> ScrapeResult:
        logger.info(
            "[%s] Starting scrape with query: '%s', location: '%s'", self.source, query, location
        )
        self.reset()

        # Page-number pagination, 1-based
        return await self.paginate(
            lambda page: self.build_search_url(query=query, location=location, page=page + 1),
            max_pages,
        )

    def build_search_url(self, query: str = "", location: str = "", page: int = 1) -> str:
        params: list[tuple[str, str | int]] = []
        if query:
            params.append(("q", query))
        if location:
            params.append(("location", location))
        if page > 1:
            params.append(("page", page))

        url = urljoin(self.base_url, SEARCH_PATH)
        return f"{url}?{urlencode(params)}" if params else url

    def extract_job_data(self, doc: BeautifulSoup, element: Tag) -> JobPosting:
        title = self.extract_text(doc, TITLE_SELECTOR, element)
        company = self.extract_text(doc, COMPANY_SELECTOR, element)
        location = self.extract_text(doc, LOCATION_SELECTOR, element)
        description = self.extract_text(doc, DESCRIPTION_SELECTOR, element)

        apply_link = self.extract_attribute(doc, LINK_SELECTOR, "href", element)
        if apply_link and not apply_link.startswith("http"):
            apply_link = urljoin(self.base_url, apply_link)

        return JobPosting(
            title=title,
            company=company,
            location=location,
            description=description,
            apply_link=apply_link or self.base_url,
            external_id=self.create_external_id(title, company, apply_link),
            tags=self.extract_tags(element),
            posted_at=self.extract_posted_date(doc, element),
            source=self.source,
        )

    def extract_tags(self, element: Tag) -> list[str]:
        """Salary / schedule / contract badges plus any data-type attribute."""
        tags = [el.get_text(" ", strip=True) for el in element.select(TAG_SELECTOR)]

        job_type = element.get("data-type")
        if not job_type:
            typed = element.select_one("[data-type]")
            job_type = typed.get("data-type") if typed else None
        if job_type:
            tags.append(job_type)

        return [tag for tag in tags if tag]

    def extract_posted_date(self, doc: BeautifulSoup, element: Tag):
        """'hace 3 días', '2 days ago', '2024-03-01' -> datetime; else now."""
        return parse_posted_date(self.extract_text(doc, DATE_SELECTOR, element))

    def create_external_id(self, title: str, company: str, url: str) -> str:
        match = JOB_ID_RE.search(url or "")
        if match:
            site_id = next(group for group in match.groups() if group)
            return f"{slugify(self.source)}-{site_id}"
        return self.generate_external_id(JobPosting(title=title, company=company))

    def clean_job_data(self, job: JobPosting) -> JobPosting:
        cleaned = super().clean_job_data(job)
        if cleaned.description:
            cleaned.description = strip_phrases(cleaned.description, BOILERPLATE_PHRASES)
        return cleaned
