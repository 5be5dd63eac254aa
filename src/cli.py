"""
Command-line interface for dark-gravity.

Provides commands to crawl story sources, run the analysis worker,
repair stored analyses, initialize the database, and run diagnostic checks.

Usage:
    dark-gravity crawl           # One crawl (repair sweep + all sources)
    dark-gravity crawl --loop    # Crawl every POLL_INTERVAL_SECONDS
    dark-gravity analyze-worker  # Consume story_fetched events
    dark-gravity repair          # Repair sweep only
    dark-gravity init-db         # Initialize database
    dark-gravity providers       # Show the configured provider chain
    dark-gravity health          # Check service health
"""

import asyncio
import signal
import sys

import click

from src.analysis.chain import ProviderChain
from src.analysis.config import AnalysisConfig
from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Dark Gravity - Horror story ingestion and AI analysis."""
    setup_logging("DEBUG" if debug else None)

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--mock", is_flag=True, help="Use the mock connector instead of Reddit/YouTube")
@click.option(
    "--mode",
    type=click.Choice(["event", "inline"]),
    default=None,
    help="Analysis mode for new stories (default: ANALYSIS_MODE)",
)
@click.option("--loop", "run_loop", is_flag=True, help="Keep crawling every poll interval")
@click.option("--skip-repair", is_flag=True, help="Do not run the repair sweep first")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def crawl(mock: bool, mode: str | None, run_loop: bool, skip_repair: bool, metrics: bool) -> None:
    """Crawl all sources and store new stories."""
    from src.ingestion.queue import StoryFetchedQueue
    from src.services.crawler_service import CrawlerService, create_sources
    from src.services.repair_service import RepairService
    from src.services.story_processor import AnalysisMode, StoryProcessor
    from src.storage.database import Database
    from src.storage.repository import StoryRepository

    settings = get_settings()
    analysis_mode = AnalysisMode(mode or settings.analysis_mode)
    run_repair = settings.repair_on_crawl and not skip_repair

    async def run():
        if metrics:
            get_metrics().start_server()

        db = Database()
        await db.connect()
        chain = ProviderChain.from_config(AnalysisConfig())
        queue = None
        if analysis_mode == AnalysisMode.EVENT:
            queue = StoryFetchedQueue()
            await queue.connect()

        repository = StoryRepository(db)
        processor = StoryProcessor(repository, chain, publisher=queue, mode=analysis_mode)
        crawler = CrawlerService(
            processor,
            create_sources(settings, use_mock=mock),
            repair=RepairService(repository, chain) if run_repair else None,
        )

        try:
            if run_loop:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, lambda: asyncio.create_task(crawler.stop()))
                await crawler.start()
            else:
                results = await crawler.run_once()
                click.echo("\nCrawl Results:")
                click.echo("-" * 40)
                for source, count in results.items():
                    click.echo(f"  {source}: {count} new stories")
                click.echo("-" * 40)
        finally:
            await crawler.close()
            await chain.close()
            if queue is not None:
                await queue.close()
            await db.close()

    asyncio.run(run())


@main.command("analyze-worker")
@click.option("--batch-size", default=10, help="Events read per batch")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def analyze_worker(batch_size: int, metrics: bool, metrics_port: int | None) -> None:
    """Run the analysis worker (story_fetched consumer)."""
    from src.services.analysis_worker import AnalysisWorker

    async def run():
        worker = AnalysisWorker(batch_size=batch_size)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.stop()))

        await worker.start()

    asyncio.run(run())


@main.command()
def repair() -> None:
    """Run one repair sweep over all stored stories."""
    from src.services.repair_service import RepairService
    from src.storage.database import Database
    from src.storage.repository import StoryRepository

    async def run():
        db = Database()
        await db.connect()
        chain = ProviderChain.from_config(AnalysisConfig())
        try:
            stats = await RepairService(StoryRepository(db), chain).repair()
        finally:
            await chain.close()
            await db.close()

        click.echo("\nRepair Results:")
        click.echo("-" * 40)
        for name, value in stats.as_dict().items():
            click.echo(f"  {name}: {value}")
        click.echo("-" * 40)

    asyncio.run(run())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.storage.database import Database
    from src.storage.repository import StoryRepository

    async def run():
        db = Database()
        await db.connect()

        repo = StoryRepository(db)
        await repo.create_tables()

        click.echo("Database initialized successfully")

        await db.close()

    asyncio.run(run())


@main.command()
def providers() -> None:
    """Show the provider chain in priority order."""

    async def run():
        chain = ProviderChain.from_config(AnalysisConfig())
        names = chain.provider_names
        await chain.close()

        click.echo("\nProvider Chain:")
        click.echo("-" * 40)
        if not names:
            click.echo(click.style("  No providers configured, mock analysis only", fg="yellow"))
        for position, name in enumerate(names, start=1):
            click.echo(f"  {position}. {name}")
        click.echo("-" * 40)

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check Redis
        try:
            from src.ingestion.queue import StoryFetchedQueue
            queue = StoryFetchedQueue()
            await queue.connect()
            results["redis"] = await queue.health_check()
            await queue.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        # Check PostgreSQL
        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check sources
        from src.ingestion.reddit_adapter import RedditConnector
        reddit = RedditConnector()
        results["reddit_reachable"] = await reddit.health_check()
        await reddit.close()

        config = AnalysisConfig()
        chain = ProviderChain.from_config(config)
        results["ai_providers_configured"] = bool(chain.provider_names)
        await chain.close()

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
