import asyncio
import logging
from typing import Optional

import click

from .config import get_settings
from .usecases import consistency as consistency_usecase


@click.group()
def cli() -> None:
    """Maintenance commands for station capacity."""
    logging.basicConfig(level=get_settings().log_level)


@cli.command("repair-capacity")
@click.option("--station", "station_id", type=int, default=None, help="Only recompute this station")
def repair_capacity(station_id: Optional[int]) -> None:
    """Recompute available slots from reserving bookings and repair drift."""
    from .database import engine, unit_of_work

    retries = get_settings().conflict_retry_limit

    async def run() -> list[consistency_usecase.CapacitySnapshot]:
        try:
            if station_id is not None:
                return [
                    await consistency_usecase.recompute_station_capacity(
                        unit_of_work, station_id=station_id, max_attempts=retries
                    )
                ]
            return await consistency_usecase.repair_all_stations(unit_of_work, max_attempts=retries)
        finally:
            await engine.dispose()

    snapshots = asyncio.run(run())
    drifted = [s for s in snapshots if s.drift]
    for snapshot in snapshots:
        marker = " (repaired)" if snapshot.drift else ""
        click.echo(f"station {snapshot.station_id}: {snapshot.available}/{snapshot.total}{marker}")
    click.echo(f"{len(snapshots)} station(s) checked, {len(drifted)} repaired")


@cli.command("check-drift")
@click.argument("station_id", type=int)
def check_drift(station_id: int) -> None:
    """Report drift for one station without writing."""
    from .database import engine, unit_of_work

    async def run() -> consistency_usecase.DriftReport:
        try:
            return await consistency_usecase.detect_drift(unit_of_work, station_id=station_id)
        finally:
            await engine.dispose()

    report = asyncio.run(run())
    click.echo(
        f"station {report.station_id}: cached {report.cached_available}, "
        f"expected {report.expected_available} of {report.total}"
    )
    if not report.consistent:
        raise click.exceptions.Exit(1)
