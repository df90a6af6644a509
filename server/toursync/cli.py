"""Command line entry point for database setup and one-off sync operations."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from sqlalchemy import func, select

from .core.config import settings
from .core.database import async_session_factory, close_db, init_db
from .core.exceptions import SyncInProgressError
from .models.location import Country, Transport
from .models.mapping import SectionDefinition
from .models.sync import SYNC_TYPES
from .services.auto_close_service import AutoCloseService
from .services.sync.stuck_syncs import StuckSyncService
from .services.sync.sync_runner import SyncToursRunner

logger = logging.getLogger("toursync.cli")

SEED_COUNTRIES = [
    {"iso2": "JP", "iso3": "JPN", "name_en": "Japan", "name_th": "\u0e0d\u0e35\u0e48\u0e1b\u0e38\u0e48\u0e19", "slug": "japan", "region": "Asia"},
    {"iso2": "KR", "iso3": "KOR", "name_en": "South Korea", "name_th": "\u0e40\u0e01\u0e32\u0e2b\u0e25\u0e35\u0e43\u0e15\u0e49", "slug": "south-korea", "region": "Asia"},
    {"iso2": "CN", "iso3": "CHN", "name_en": "China", "name_th": "\u0e08\u0e35\u0e19", "slug": "china", "region": "Asia"},
    {"iso2": "VN", "iso3": "VNM", "name_en": "Vietnam", "name_th": "\u0e40\u0e27\u0e35\u0e22\u0e14\u0e19\u0e32\u0e21", "slug": "vietnam", "region": "Asia"},
    {"iso2": "TW", "iso3": "TWN", "name_en": "Taiwan", "name_th": "\u0e44\u0e15\u0e49\u0e2b\u0e27\u0e31\u0e19", "slug": "taiwan", "region": "Asia"},
    {"iso2": "CH", "iso3": "CHE", "name_en": "Switzerland", "name_th": "\u0e2a\u0e27\u0e34\u0e15\u0e40\u0e0b\u0e2d\u0e23\u0e4c\u0e41\u0e25\u0e19\u0e14\u0e4c", "slug": "switzerland", "region": "Europe"},
]

SEED_TRANSPORTS = [
    {"code": "TG", "code1": "THA", "name": "Thai Airways"},
    {"code": "XJ", "code1": "TAX", "name": "Thai AirAsia X"},
    {"code": "FD", "code1": "AIQ", "name": "Thai AirAsia"},
    {"code": "VZ", "code1": "TVJ", "name": "Thai Vietjet Air"},
]

SEED_SECTION_DEFINITIONS = [
    ("tour", "title", "TEXT", True, None),
    ("tour", "wholesaler_tour_code", "TEXT", False, None),
    ("tour", "primary_country_id", "INT", False, "countries"),
    ("tour", "transport_id", "INT", False, "transports"),
    ("tour", "duration_days", "INT", False, None),
    ("tour", "duration_nights", "INT", False, None),
    ("tour", "highlights", "ARRAY_TEXT", False, None),
    ("content", "description", "TEXT", False, None),
    ("media", "cover_image", "TEXT", False, None),
    ("seo", "slug", "TEXT", False, None),
    ("period", "external_id", "TEXT", False, None),
    ("period", "start_date", "DATE", True, None),
    ("period", "end_date", "DATE", True, None),
    ("period", "capacity", "INT", False, None),
    ("period", "booked", "INT", False, None),
    ("pricing", "price_adult", "DECIMAL", False, None),
    ("pricing", "discount_adult", "DECIMAL", False, None),
    ("pricing", "price_single", "DECIMAL", False, None),
    ("pricing", "deposit", "DECIMAL", False, None),
]


async def seed_reference_data() -> dict[str, int]:
    """Insert sample countries, transports and section definitions into an empty database."""
    created = {"countries": 0, "transports": 0, "section_definitions": 0}

    async with async_session_factory() as db:
        try:
            existing = (await db.execute(select(func.count()).select_from(Country))).scalar_one()
            if existing:
                logger.info("Reference data already exists, skipping...")
                return created

            for row in SEED_COUNTRIES:
                db.add(Country(is_active=True, **row))
                created["countries"] += 1

            for row in SEED_TRANSPORTS:
                db.add(Transport(type="airline", is_active=True, **row))
                created["transports"] += 1

            for sort_order, (section, field_name, data_type, required, lookup) in enumerate(SEED_SECTION_DEFINITIONS):
                db.add(SectionDefinition(
                    section_name=section,
                    field_name=field_name,
                    data_type=data_type,
                    is_required=required,
                    lookup_table=lookup,
                    lookup_return_field="id",
                    lookup_create_if_not_found=False,
                    sort_order=sort_order,
                ))
                created["section_definitions"] += 1

            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to seed reference data: {e}")
            raise

    return created


async def _init_db(args: argparse.Namespace) -> int:
    await init_db()
    logger.info("Database schema created")
    if args.seed:
        _emit(await seed_reference_data())
    return 0


async def _sync_tours(args: argparse.Namespace) -> int:
    async with async_session_factory() as db:
        runner = SyncToursRunner(db, args.wholesaler_id, sync_type=args.type, limit=args.limit)
        try:
            sync_log = await runner.run()
        except SyncInProgressError:
            logger.error(f"A sync is already running for wholesaler {args.wholesaler_id}")
            return 2

        if sync_log is None:
            logger.error(f"Wholesaler {args.wholesaler_id} has no API config")
            return 1

        _emit({
            "sync_id": sync_log.sync_id,
            "status": sync_log.status,
            "tours_received": sync_log.tours_received,
            "tours_created": sync_log.tours_created,
            "tours_updated": sync_log.tours_updated,
            "tours_skipped": sync_log.tours_skipped,
            "tours_failed": sync_log.tours_failed,
            "periods_created": sync_log.periods_created,
            "periods_updated": sync_log.periods_updated,
        })
        return 0 if sync_log.status in ("completed", "partial") else 1


async def _cancel_stuck(args: argparse.Namespace) -> int:
    async with async_session_factory() as db:
        stats = await StuckSyncService(db).cancel_stuck(
            timeout_minutes=args.timeout,
            dry_run=args.dry_run,
        )
    _emit(stats)
    return 0


async def _auto_close(args: argparse.Namespace) -> int:
    async with async_session_factory() as db:
        stats = await AutoCloseService(db).run(force=args.force)
    _emit(stats)
    return 0


def _emit(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="toursync", description="TourSync maintenance commands")
    subcommands = parser.add_subparsers(dest="command", required=True)

    init_cmd = subcommands.add_parser("init-db", help="Create database tables")
    init_cmd.add_argument("--seed", action="store_true", help="Insert sample reference data")
    init_cmd.set_defaults(handler=_init_db)

    sync_cmd = subcommands.add_parser("sync-tours", help="Run a tour sync for one wholesaler now")
    sync_cmd.add_argument("wholesaler_id", type=int)
    sync_cmd.add_argument("--type", choices=SYNC_TYPES, default="manual")
    sync_cmd.add_argument("--limit", type=int, default=None)
    sync_cmd.set_defaults(handler=_sync_tours)

    stuck_cmd = subcommands.add_parser("cancel-stuck", help="Time out syncs without a recent heartbeat")
    stuck_cmd.add_argument(
        "--timeout",
        type=int,
        default=None,
        help=f"Minutes without heartbeat (default {settings.heartbeat_timeout_minutes})",
    )
    stuck_cmd.add_argument("--dry-run", action="store_true", help="Report without changing anything")
    stuck_cmd.set_defaults(handler=_cancel_stuck)

    close_cmd = subcommands.add_parser("auto-close", help="Close departed periods and tours")
    close_cmd.add_argument("--force", action="store_true", help="Run even when auto-close is disabled")
    close_cmd.set_defaults(handler=_auto_close)

    return parser


async def _run(args: argparse.Namespace) -> int:
    try:
        return await args.handler(args)
    finally:
        await close_db()


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
