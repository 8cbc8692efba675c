"""
Folio - Main entry point.

    python -m folio.main demo      # translate a sample book offline
    python -m folio.main serve     # run the API (same as: uvicorn folio.api.app:app)

The demo uses the DebugTranslator, so it needs no API keys.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn

from folio.config import get_settings
from folio.core.events import get_event_bus, reset_event_bus
from folio.core.models import Book, ContentUnit
from folio.i18n.translator import DebugTranslator
from folio.logging_config import configure_logging
from folio.pipeline import TranslationPipeline

logger = logging.getLogger(__name__)

SAMPLE_CHAPTERS = [
    (
        "Le départ",
        '<section data-id="intro"><p>Il était une fois un petit village.</p></section>'
        '<section data-id="scene-1"><h2>Le matin</h2><p>Le soleil se levait sur les toits.</p></section>',
    ),
    (
        "La route",
        "<h2>La route</h2><p>Le chemin était long et <em>poussiéreux</em>.</p>"
        '<hr/><p>Enfin, la ville apparut.</p>',
    ),
    (
        "Illustrations",
        '<figure><img src="map.png" alt=""/></figure>',
    ),
]


async def demo(languages: list[str]) -> None:
    """
    Translate a three-chapter sample book and print the results.

    The third chapter has no text and shows up as a failure.
    """
    print("=" * 60)
    print("FOLIO TRANSLATION DEMO")
    print("=" * 60)
    print()

    reset_event_bus()
    settings = get_settings().model_copy(update={
        "translation_dispatch_delay": 0.0,
        "bulk_unit_delay": 0.0,
    })
    pipeline = TranslationPipeline(
        translator=DebugTranslator(cost_per_call=0.002),
        settings=settings,
    )

    book = await pipeline.catalog.add_book(Book(title="Le Voyage", author="Anonyme"))
    for number, (title, document) in enumerate(SAMPLE_CHAPTERS, start=1):
        await pipeline.catalog.add_unit(ContentUnit(
            book_id=book.id, title=title, number=number, document=document,
        ))
    print(f"Created book {book.id} with {len(SAMPLE_CHAPTERS)} chapters")

    ack = await pipeline.kickoff.kickoff_book(book.id, languages)
    print(f"Kickoff accepted: job {ack.job_id}, {ack.units} chapter(s), {', '.join(ack.languages)}")
    print()

    await pipeline.runner.drain()

    summary = await pipeline.progress.job_summary(ack.job_id)
    print(f"Job {summary.job_id}: {summary.status.value}")
    print(f"  ✓ {summary.completed} completed, ✗ {summary.failed} failed of {summary.total}")
    for failure in summary.failures[:5]:
        print(f"  • {failure.content_unit_id}/{failure.language}: {failure.error}")
    print()

    progress = await pipeline.progress.book_progress(book.id, ack.languages)
    print(f"Book progress: {progress.completed_units}/{progress.total_units} chapters")
    for code, counts in progress.by_language.items():
        print(f"  • {code}: {counts.completed} completed, {counts.failed} failed")
    print()

    period = await pipeline.ledger.current_period()
    print(f"Budget {period.month}: ${period.spent_usd:.4f} of ${period.ceiling_usd:.2f}")

    events = get_event_bus().get_history(event_type="translation.*")
    print(f"Event history ({len(events)} translation events)")
    print()
    print("=" * 60)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="folio", description="Folio translation pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    demo_parser = subparsers.add_parser("demo", help="Translate a sample book offline")
    demo_parser.add_argument(
        "--languages",
        default="en,es,de",
        help="Comma-separated target languages (default: en,es,de)",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "demo":
        asyncio.run(demo([c.strip() for c in args.languages.split(",") if c.strip()]))
    elif args.command == "serve":
        settings = get_settings()
        uvicorn.run(
            "folio.api.app:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )


if __name__ == "__main__":
    main()
