"""CLI interface for jobaggregator."""

import asyncio

import click

from jobaggregator.config import load_config, scraper_overrides
from jobaggregator.db.models import init_db
from jobaggregator.db.repository import JobRepository
from jobaggregator.scrapers.scraper_service import ScrapeRun, ScraperService
from jobaggregator.utils.logging_config import setup_logging


def _get_repo(config: dict) -> JobRepository:
    conn = init_db(config["database"]["path"])
    return JobRepository(conn)


def _scrape_options(config: dict, name: str, query, location, max_pages) -> dict:
    search = config["search"]
    return {
        "query": search["query"] if query is None else query,
        "location": search["location"] if location is None else location,
        "max_pages": search["max_pages"] if max_pages is None else max_pages,
        "config": scraper_overrides(config, name),
    }


def _echo_run(run: ScrapeRun) -> None:
    if run.error:
        click.echo(f"  [{run.scraper_name}] FAILED: {run.error}")
        return
    status = "ok" if run.success else "failed"
    click.echo(
        f"  [{run.scraper_name}] {status} — {run.stats.saved} saved, "
        f"{run.stats.duplicates} duplicates, {run.stats.failed} failed "
        f"({run.duration:.1f}s, {run.error_count} error(s))"
    )


@click.group()
@click.option("--config-dir", default=None, help="Path to config directory")
@click.pass_context
def cli(ctx, config_dir):
    """jobaggregator - job listing scraper and aggregator."""
    ctx.ensure_object(dict)
    config = load_config(config_dir)
    setup_logging(
        config.get("logging", {}).get("level", "INFO"),
        config.get("logging", {}).get("file"),
    )
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def init(ctx):
    """Initialize the job database."""
    db_path = ctx.obj["config"]["database"]["path"]
    init_db(db_path)
    click.echo(f"Database initialized at {db_path}")


@cli.command()
@click.pass_context
def scrapers(ctx):
    """List available scrapers."""
    service = ScraperService()
    for info in service.get_scrapers_info():
        click.echo(f"  {info['id']:<22} {info['display_name']:<26} {info['base_url']}")


@cli.command()
@click.argument("name")
@click.option("--query", default=None, help="Search keywords")
@click.option("--location", default=None, help="Location filter")
@click.option("--max-pages", default=None, type=int, help="Maximum result pages")
@click.pass_context
def scrape(ctx, name, query, location, max_pages):
    """Run a single scraper."""
    config = ctx.obj["config"]
    service = ScraperService(repo=_get_repo(config))

    if name not in service.get_available_scrapers():
        raise click.BadParameter(
            f"Unknown scraper '{name}'. Available: {', '.join(service.get_available_scrapers())}",
            param_hint="NAME",
        )

    run = asyncio.run(
        service.run_scraper(name, _scrape_options(config, name, query, location, max_pages))
    )
    _echo_run(run)
    for error in run.result.errors:
        click.echo(f"    {error['context']}: {error['message']}")


@cli.command("scrape-many")
@click.argument("names", nargs=-1)
@click.option("--query", default=None, help="Search keywords")
@click.option("--location", default=None, help="Location filter")
@click.option("--max-pages", default=None, type=int, help="Maximum result pages")
@click.option("--sequential", is_flag=True, help="Run one scraper at a time")
@click.pass_context
def scrape_many(ctx, names, query, location, max_pages, sequential):
    """Run several scrapers (all registered ones when no NAMES are given)."""
    config = ctx.obj["config"]
    service = ScraperService(repo=_get_repo(config))

    configs = [
        {"name": name, "options": _scrape_options(config, name, query, location, max_pages)}
        for name in (names or service.get_available_scrapers())
    ]

    if sequential:
        runs = asyncio.run(service.run_multiple_scrapers_sequential(configs))
    else:
        runs = asyncio.run(service.run_multiple_scrapers(configs))

    successful = sum(1 for run in runs if run.success)
    click.echo(f"{len(runs)} scraper(s) run, {successful} successful")
    for run in runs:
        _echo_run(run)

    stats = service.get_statistics()
    click.echo(
        f"Success rate {stats['success_rate']}, "
        f"{stats['total_jobs_scraped']} scraped, {stats['total_jobs_saved']} saved"
    )


@cli.command()
@click.option("--query", default=None, help="Google Jobs search query")
@click.pass_context
def sync(ctx, query):
    """Fetch jobs from the Google Jobs aggregator."""
    from jobaggregator.scrapers.google_jobs import DEFAULT_QUERY, GoogleJobsFetcher

    config = ctx.obj["config"]
    fetcher = GoogleJobsFetcher(config, _get_repo(config))
    if not fetcher.is_available():
        raise click.ClickException("SERPAPI_KEY is not set")

    result = fetcher.fetch_and_store(query or DEFAULT_QUERY)
    click.echo(f"Sync complete. Processed {result['found']} jobs, {result['new']} new.")


@cli.command("list-jobs")
@click.option("--skills", default=None, help="Title substring filter")
@click.option("--source", default=None, help="Source substring filter")
@click.option("--limit", default=50, type=int, help="Max results")
@click.pass_context
def list_jobs(ctx, skills, source, limit):
    """List stored jobs, newest first."""
    repo = _get_repo(ctx.obj["config"])
    jobs = repo.get_jobs(skills=skills, source=source, limit=limit)

    if not jobs:
        click.echo("No jobs found matching filters.")
        return

    for job in jobs:
        posted = (job["posted_at"] or "")[:10]
        click.echo(
            f"  {posted:<10}  {job['title']} @ {job['company']}"
            f" — {job['location']}  ({job['source']})"
        )

    click.echo(f"\n{len(jobs)} job(s) shown")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show job store statistics."""
    s = _get_repo(ctx.obj["config"]).get_stats()

    click.echo("=== jobaggregator stats ===")
    click.echo(f"  Total jobs:     {s['total']}")
    click.echo(f"  Last updated:   {s['last_updated'] or '-'}")
    click.echo()
    click.echo("  By source:")
    for src, cnt in s["by_source"].items():
        click.echo(f"    {src}: {cnt}")


@cli.command()
@click.pass_context
def run(ctx):
    """Start the scheduler daemon (scrape + sync on a cron schedule)."""
    from jobaggregator.scheduler.job_scheduler import start_scheduler

    click.echo("Starting jobaggregator scheduler... (Ctrl+C to stop)")
    start_scheduler(ctx.obj["config"])


if __name__ == "__main__":
    cli()
