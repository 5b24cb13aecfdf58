"""Orchestrates scraper runs and keeps in-memory run history."""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from jobaggregator.db.repository import JobRepository
from jobaggregator.scrapers.base import SaveStats, ScrapeResult
from jobaggregator.scrapers.registry import ScraperRegistry, default_registry

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100


@dataclass
class ScrapeRun:
    """One scraper invocation, from start to completion or failure."""

    id: str | None
    scraper_name: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float = 0.0
    success: bool = False
    stats: SaveStats = field(default_factory=SaveStats)
    error_count: int = 0
    error: str | None = None
    # Only on the value handed back to the caller, never kept in history
    result: ScrapeResult | None = field(default=None, repr=False)


class ScraperService:
    """Runs registered scrapers singly, concurrently or one after another."""

    def __init__(
        self,
        registry: ScraperRegistry | None = None,
        repo: JobRepository | None = None,
        history: deque | None = None,
    ):
        self.registry = registry or default_registry()
        self.repo = repo
        self.history: deque[ScrapeRun] = (
            history if history is not None else deque(maxlen=HISTORY_SIZE)
        )
        self.active_scrapes: dict[str, dict] = {}

    async def run_scraper(
        self, name: str, options: dict | None = None, repo: JobRepository | None = None
    ) -> ScrapeRun:
        """Run one scraper and record the outcome.

        `repo` overrides the service-wide store for this run only. Errors
        escaping the scraper are recorded as a failed run and re-raised.
        """
        options = options or {}
        repo = repo if repo is not None else self.repo
        scrape_id = self.generate_scrape_id(name)
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()

        logger.info("Starting scrape %s with scraper: %s", scrape_id, name)
        self.active_scrapes[scrape_id] = {
            "scraper_name": name,
            "start_time": start_time,
            "status": "running",
            "_started": started,
        }

        try:
            scraper = self.registry.get_scraper(name, options.get("config"), repo=repo)
            result = await scraper.scrape(
                query=options.get("query", ""),
                location=options.get("location", ""),
                max_pages=int(options.get("max_pages", 1)),
            )
        except Exception as e:
            logger.error("Scrape %s failed: %s", scrape_id, e)
            self.active_scrapes.pop(scrape_id, None)
            self._record(ScrapeRun(
                id=scrape_id,
                scraper_name=name,
                start_time=start_time,
                end_time=datetime.now(timezone.utc),
                duration=time.monotonic() - started,
                success=False,
                error=str(e),
            ))
            raise

        self.active_scrapes.pop(scrape_id, None)
        run = ScrapeRun(
            id=scrape_id,
            scraper_name=name,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            duration=time.monotonic() - started,
            success=result.success,
            stats=result.stats,
            error_count=len(result.errors),
        )
        self._record(run)

        logger.info("Scrape %s completed. Success: %s", scrape_id, result.success)
        return replace(run, result=result)

    async def run_multiple_scrapers(
        self, configs: list[dict], repo: JobRepository | None = None
    ) -> list[ScrapeRun]:
        """Run scrapers concurrently; one failing never affects the others."""
        logger.info("Running %d scrapers in parallel", len(configs))
        return list(await asyncio.gather(*(self._run_isolated(cfg, repo) for cfg in configs)))

    async def run_multiple_scrapers_sequential(
        self, configs: list[dict], repo: JobRepository | None = None
    ) -> list[ScrapeRun]:
        logger.info("Running %d scrapers sequentially", len(configs))
        return [await self._run_isolated(cfg, repo) for cfg in configs]

    async def _run_isolated(self, cfg: dict, repo: JobRepository | None) -> ScrapeRun:
        name = cfg.get("name", "")
        try:
            return await self.run_scraper(name, cfg.get("options"), repo)
        except Exception as e:
            return ScrapeRun(id=None, scraper_name=name, success=False, error=str(e))

    def _record(self, run: ScrapeRun) -> None:
        # deque(maxlen=...) drops the oldest entry once full
        self.history.append(run)

    # ── Introspection ──────────────────────────────────────────────

    def get_available_scrapers(self) -> list[str]:
        return self.registry.get_available_scrapers()

    def get_scrapers_info(self) -> list[dict]:
        return self.registry.get_scrapers_info()

    def get_active_scrapes(self) -> list[dict]:
        now = time.monotonic()
        return [
            {
                "id": scrape_id,
                "scraper_name": info["scraper_name"],
                "start_time": info["start_time"],
                "status": info["status"],
                "duration": now - info["_started"],
            }
            for scrape_id, info in self.active_scrapes.items()
        ]

    def get_scrape_history(self, limit: int = 20) -> list[ScrapeRun]:
        """Most recent runs first."""
        if limit <= 0:
            return []
        return list(reversed(self.history))[:limit]

    def get_statistics(self) -> dict:
        total = len(self.history)
        successful = sum(1 for run in self.history if run.success)
        average_duration = (
            sum(run.duration for run in self.history) / total if total else 0.0
        )

        return {
            "total_scrapes": total,
            "successful_scrapes": successful,
            "failed_scrapes": total - successful,
            "success_rate": f"{successful / total * 100:.2f}%" if total else "0%",
            "total_jobs_scraped": sum(run.stats.total for run in self.history),
            "total_jobs_saved": sum(run.stats.saved for run in self.history),
            "average_duration": round(average_duration, 3),
            "active_scrapes": len(self.active_scrapes),
        }

    def clear_history(self) -> None:
        self.history.clear()
        logger.info("History cleared")

    @staticmethod
    def generate_scrape_id(name: str) -> str:
        return f"{name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"
