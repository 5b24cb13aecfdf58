"""APScheduler-based periodic ingestion: scrapers, then aggregator sync."""

import asyncio
import logging
import signal
import time
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from jobaggregator.config import scraper_overrides
from jobaggregator.db.models import init_db
from jobaggregator.db.repository import JobRepository
from jobaggregator.scrapers.google_jobs import GoogleJobsFetcher
from jobaggregator.scrapers.scraper_service import ScraperService

logger = logging.getLogger(__name__)


def build_run_configs(config: dict, available: list[str]) -> list[dict]:
    """Scraper run list for one tick: schedule.scrapers, else every registered one."""
    search = config.get("search", {})
    names = config.get("schedule", {}).get("scrapers") or available

    return [
        {
            "name": name,
            "options": {
                "query": search.get("query", ""),
                "location": search.get("location", ""),
                "max_pages": search.get("max_pages", 1),
                "config": scraper_overrides(config, name),
            },
        }
        for name in names
    ]


def run_pipeline(config: dict, service: ScraperService) -> None:
    """Execute one scrape -> sync pass and log the running statistics."""
    # Per-tick connection, handed to each run
    conn = init_db(config["database"]["path"])
    repo = JobRepository(conn)

    try:
        logger.info("=== Pipeline: Scraping ===")
        run_configs = build_run_configs(config, service.get_available_scrapers())
        if config.get("schedule", {}).get("parallel", True):
            runs = asyncio.run(service.run_multiple_scrapers(run_configs, repo))
        else:
            runs = asyncio.run(service.run_multiple_scrapers_sequential(run_configs, repo))
        for run in runs:
            logger.info(
                "Pipeline: %s success=%s saved=%d duplicates=%d failed=%d%s",
                run.scraper_name, run.success, run.stats.saved,
                run.stats.duplicates, run.stats.failed,
                f" error={run.error}" if run.error else "",
            )

        logger.info("=== Pipeline: Aggregator sync ===")
        fetcher = GoogleJobsFetcher(config, repo)
        if fetcher.is_available():
            for query in config.get("schedule", {}).get("sync_queries", []):
                try:
                    fetcher.fetch_and_store(query)
                except Exception:
                    logger.exception("Aggregator sync failed for '%s'", query)
        else:
            logger.info("SERPAPI_KEY not set — skipping aggregator sync")

        logger.info("=== Pipeline complete === %s", service.get_statistics())
    finally:
        conn.close()


def build_scheduler(config: dict, service: ScraperService) -> BackgroundScheduler:
    """An unstarted scheduler holding the single pipeline job.

    The job fires once immediately and then on the cron hours. Being one job
    with max_instances=1, a tick can never overlap the startup run.
    """
    schedule_hours = config.get("schedule", {}).get("hours", [8, 20])
    tz = config.get("schedule", {}).get("timezone", "UTC")

    scheduler = BackgroundScheduler(timezone=tz)
    scheduler.add_job(
        run_pipeline,
        "cron",
        hour=",".join(str(h) for h in schedule_hours),
        minute=0,
        args=[config, service],
        id="scrape_pipeline",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def start_scheduler(config: dict) -> None:
    """Start the background scheduler and block until interrupted."""
    schedule_hours = config.get("schedule", {}).get("hours", [8, 20])

    # One service for the daemon's lifetime so run history spans ticks
    service = ScraperService()

    scheduler = build_scheduler(config, service)
    scheduler.start()
    logger.info(
        "Scheduler started — pipeline runs now, then daily at %s %s",
        ", ".join(f"{h}:00" for h in schedule_hours),
        config.get("schedule", {}).get("timezone", "UTC"),
    )

    shutdown = False

    def _signal_handler(signum, frame):
        nonlocal shutdown
        shutdown = True

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        while not shutdown:
            time.sleep(1)
    finally:
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
