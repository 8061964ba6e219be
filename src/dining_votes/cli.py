from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Sequence

from rich.console import Console
from rich.table import Table

from .bank import DEFAULT_BANK_PATH, Registry, read_bank
from .builder import DEFAULT_TIMEZONE, BuildReport, run_build
from .errors import CorruptSnapshot
from .menu_feed import ENDPOINT, MenuFeedClient
from .votes import VoteDiffRequest, bitmap_for, encode_votes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Maintain the dining food bank and craft vote payloads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress while running")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Scan the menu feed around today and grow the bank")
    build.add_argument("days_before", type=int, help="Days before today to scan")
    build.add_argument("days_after", type=int, help="Days after today to scan")
    build.add_argument("--bank", type=Path, default=DEFAULT_BANK_PATH, help=f"Bank file (default: {DEFAULT_BANK_PATH})")
    build.add_argument("--endpoint", default=ENDPOINT, help="Menu GraphQL endpoint")
    build.add_argument("--timezone", default=DEFAULT_TIMEZONE, help=f"Timezone that defines today (default: {DEFAULT_TIMEZONE})")
    build.add_argument("--timeout", type=float, default=30, help="Per-request timeout in seconds")

    inspect = sub.add_parser("inspect", help="Summarise a bank file")
    inspect.add_argument("--bank", type=Path, default=DEFAULT_BANK_PATH)
    inspect.add_argument("--latest", type=int, default=10, help="How many of the newest foods to list")

    make_votes = sub.add_parser("make-votes", help="Write a vote payload for manual testing")
    make_votes.add_argument("--bank", type=Path, default=DEFAULT_BANK_PATH)
    make_votes.add_argument("--vote", type=int, action="append", default=[], help="Food ID voted in the new bitmap")
    make_votes.add_argument("--unvote", type=int, action="append", default=[], help="Food ID voted in the old bitmap only")
    make_votes.add_argument("-o", "--output", type=Path, default=Path("votes.bin"))
    return parser


def main(args: List[str] | None = None) -> int:
    parser = build_parser()
    opts = parser.parse_args(args=args)
    logging.basicConfig(level=logging.INFO if opts.verbose else logging.WARNING)
    console = Console()

    if opts.command == "build":
        client = MenuFeedClient(opts.endpoint, timeout=opts.timeout)
        try:
            report = run_build(
                opts.bank,
                client,
                days_before=opts.days_before,
                days_after=opts.days_after,
                timezone=opts.timezone,
            )
        except CorruptSnapshot as exc:
            console.print(f"[red]Existing bank is unreadable: {exc}[/]")
            return 1
        _render_report(console, report)
        return 0 if report.succeeded else 1

    try:
        registry = read_bank(opts.bank)
    except CorruptSnapshot as exc:
        console.print(f"[red]Failed to load bank: {exc}[/]")
        return 1

    if opts.command == "inspect":
        _render_registry(console, registry, opts.latest)
        return 0

    old_ids = set(opts.unvote)
    new_ids = set(opts.vote)
    try:
        old_bitmap = bitmap_for(old_ids, registry.next_food_id)
        new_bitmap = bitmap_for(new_ids, registry.next_food_id)
    except ValueError as exc:
        parser.error(str(exc))
    payload = encode_votes(VoteDiffRequest(old_bitmap=old_bitmap, new_bitmap=new_bitmap))
    opts.output.write_bytes(payload)
    console.print(f"Old bitmap length in bytes: {len(old_bitmap)}")
    console.print(f"New bitmap length in bytes: {len(new_bitmap)}")
    console.print(f"[green]Wrote {len(payload)} bytes to {opts.output}[/]")
    return 0


def _render_report(console: Console, report: BuildReport) -> None:
    table = Table(title="Bank Build")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Days scanned", str(len(report.dates_scanned)))
    table.add_row("Days failed", str(len(report.failed_dates)))
    table.add_row("New foods", str(report.new_foods))
    table.add_row("New locations", str(report.new_locations))
    table.add_row("Total foods", str(report.food_count))
    table.add_row("Total locations", str(report.location_count))
    console.print(table)
    for day in report.failed_dates:
        console.print(f"[yellow]Menu fetch failed for {day.isoformat()}[/]")


def _render_registry(console: Console, registry: Registry, latest: int) -> None:
    console.print(f"Foods: {len(registry.foods)} (next id {registry.next_food_id})")
    console.print(f"Locations: {len(registry.locations)} (next id {registry.next_location_id})")
    _render_entries(console, "Locations", [(e.id, e.name, "") for e in registry.locations.values()])
    newest = sorted(registry.foods.values(), key=lambda e: e.id, reverse=True)[: max(latest, 0)]
    _render_entries(console, "Newest Foods", [(e.id, e.name, e.location) for e in newest])


def _render_entries(console: Console, title: str, rows: Sequence[tuple[int, str, str]]) -> None:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Location")
    for entry_id, name, location in sorted(rows):
        table.add_row(str(entry_id), name, location)
    console.print(table)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
