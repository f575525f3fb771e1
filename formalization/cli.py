"""Operations CLI for the formalization database.

Usage:
    python -m formalization.cli init-db
    python -m formalization.cli mark-overdue
    python -m formalization.cli mark-overdue --as-of 2025-03-31
    python -m formalization.cli due-soon --days 10
"""

import argparse
import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from formalization.config import settings
from formalization.models.db import Base
from formalization.services.notes import NoteService


def print_notes(title: str, notes) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")
    if not notes:
        print("  (none)")
    for note in notes:
        print(
            f"  contract {note.credit_contract_id:>6}  #{note.installment_number:<3}"
            f"  due {note.due_date.isoformat()}  {note.amount:>12,.2f}  {note.state.value}"
        )
    print()


async def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Credit formalization maintenance CLI")
    parser.add_argument("--database-url", default=settings.database_url, help="SQLAlchemy async URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    overdue = sub.add_parser("mark-overdue", help="Flip past-due PENDING notes to OVERDUE")
    overdue.add_argument("--as-of", type=date.fromisoformat, default=None, help="Cutoff date (default: today)")

    due = sub.add_parser("due-soon", help="List PENDING notes falling due shortly")
    due.add_argument("--days", type=int, default=settings.due_soon_days, help="Look-ahead window in days")
    due.add_argument("--as-of", type=date.fromisoformat, default=None, help="Window start (default: today)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    engine = create_async_engine(args.database_url, echo=settings.debug)
    try:
        if args.command == "init-db":
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("Tables created.")
            return

        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            service = NoteService(session)
            if args.command == "mark-overdue":
                flipped = await service.mark_overdue(args.as_of)
                print_notes(f"Marked {len(flipped)} note(s) overdue", flipped)
            else:
                upcoming = await service.list_due_within(args.days, args.as_of)
                print_notes(f"{len(upcoming)} note(s) due within {args.days} day(s)", upcoming)
    finally:
        await engine.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
