"""
Operator CLI using Typer.

Loads the engine config and the YAML data file into the in-memory record
store and prints engine answers as rich tables.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryRecordStore, parse_time
from ..adapters.settings_cache import SettingsCache
from ..config import EngineConfig, get_default_config_path
from ..domain.exceptions import BookingEngineError
from ..domain.fees import FeeCalculator
from ..domain.geo_matcher import haversine_distance
from ..domain.models import GeoPoint, QuoteDay, ServiceArrangement
from ..domain.quote import Quote, QuoteTimeValidator
from ..services.availability import AvailabilityService

app = typer.Typer(
    name="bookingengine",
    help="Check provider availability and price bookings",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Availability and pricing engine tooling.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )


def _load(config_file: Optional[Path]) -> Tuple[EngineConfig, AvailabilityService]:
    config_path = config_file or get_default_config_path()
    config = EngineConfig.load_from_yaml(config_path)
    rules = config.business_rules.to_business_rules()
    store = InMemoryRecordStore.from_yaml(
        config.resolve_data_file(config_path),
        timezone=config.timezone,
        business_rules=rules,
    )
    service = AvailabilityService(
        store,
        timezone=config.timezone,
        settings_cache=SettingsCache(store.get_business_rules, config.settings_cache_ttl_seconds),
        max_gift_card_redemption=config.pricing.max_gift_card_redemption,
        weekend_rule_start=config.pricing.weekend_rule_start,
        weekend_rule_end=config.pricing.weekend_rule_end,
        minimum_quote_minutes=config.pricing.minimum_quote_minutes,
    )
    return config, service


def _location(lat: Optional[float], lng: Optional[float]) -> Optional[GeoPoint]:
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=lat, lng=lng)


def _money(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {value}") from exc


def _parse_quote_day(number: int, value: str, tz: str) -> QuoteDay:
    """Parse 'YYYY-MM-DD HH:MM-HH:MM' into a QuoteDay."""
    try:
        day_part, times = value.strip().split(" ", 1)
        start, finish = times.split("-")
    except ValueError as exc:
        raise ValueError(f"Day must look like 'YYYY-MM-DD HH:MM-HH:MM', got {value!r}") from exc
    return QuoteDay(
        day_number=number,
        date=pendulum.from_format(day_part, "YYYY-MM-DD", tz=tz).date(),
        start_time=parse_time(start),
        finish_time=parse_time(finish),
    )


def _fail(error: Exception):
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def providers(
    lat: Annotated[Optional[float], typer.Option("--lat", help="Customer latitude")] = None,
    lng: Annotated[Optional[float], typer.Option("--lng", help="Customer longitude")] = None,
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Service id")] = None,
    gender: Annotated[Optional[str], typer.Option("--gender", help="Preferred provider gender")] = None,
    config_file: ConfigOption = None,
):
    """
    List providers who serve a location.

    Examples:

        bookingengine providers --lat -33.87 --lng 151.21
        bookingengine providers --lat -33.87 --lng 151.21 --service swedish --gender female
    """
    try:
        _, service_layer = _load(config_file)
        location = _location(lat, lng)
        matched = asyncio.run(service_layer.eligible_providers(location, service, gender))
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    if not matched:
        console.print("[yellow]No providers serve this location.[/yellow]")
        return

    table = Table(title="Matching providers", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Name")
    table.add_column("Gender", style="dim")
    table.add_column("Distance (km)", justify="right")

    for provider in matched:
        area = provider.service_area
        distance = ""
        if area is not None and area.center is not None and location is not None:
            distance = f"{haversine_distance(location, area.center):.1f}"
        table.add_row(provider.id, provider.name, provider.gender or "", distance)

    console.print(table)


@app.command()
def slots(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    lat: Annotated[Optional[float], typer.Option("--lat", help="Customer latitude")] = None,
    lng: Annotated[Optional[float], typer.Option("--lng", help="Customer longitude")] = None,
    duration: Annotated[int, typer.Option("--duration", "-d", help="Booking duration in minutes")] = 60,
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Service id")] = None,
    gender: Annotated[Optional[str], typer.Option("--gender", help="Preferred provider gender")] = None,
    config_file: ConfigOption = None,
):
    """
    Show bookable start times on a date.
    """
    try:
        config, service_layer = _load(config_file)
        on_date = pendulum.from_format(date, "YYYY-MM-DD", tz=config.timezone).date()
        by_provider = asyncio.run(
            service_layer.slots_by_provider(_location(lat, lng), on_date, duration, service, gender)
        )
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    if not by_provider:
        console.print(f"[yellow]No available slots on {date}.[/yellow]")
        return

    table = Table(title=f"Available slots on {date}", show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="bold yellow")
    table.add_column("Start times")
    for provider_id, times in by_provider.items():
        table.add_row(provider_id, ", ".join(t.strftime("%H:%M") for t in times))
    console.print(table)


@app.command()
def price(
    base_price: Annotated[str, typer.Argument(help="Base price of the service")],
    at: Annotated[str, typer.Option("--at", help="Booking start (YYYY-MM-DD HH:mm)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Booking duration in minutes")] = 60,
    discount: Annotated[str, typer.Option("--discount", help="Flat discount amount")] = "0",
    gift_card: Annotated[str, typer.Option("--gift-card", help="Gift card amount to redeem")] = "0",
    providers_count: Annotated[int, typer.Option("--providers", help="Number of providers")] = 1,
    arrangement: Annotated[ServiceArrangement, typer.Option("--arrangement", help="split or multiply")] = ServiceArrangement.SPLIT,
    config_file: ConfigOption = None,
):
    """
    Price a booking and show the provider fee.
    """
    try:
        config, service_layer = _load(config_file)
        start = pendulum.from_format(at, "YYYY-MM-DD HH:mm", tz=config.timezone)
        result = asyncio.run(
            service_layer.quote_booking(
                _money(base_price),
                duration,
                start,
                discount_amount=_money(discount),
                gift_card_amount=_money(gift_card),
                provider_count=providers_count,
                arrangement=arrangement,
            )
        )
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    console.print(Panel.fit("\n".join(result.price.summary_lines()), title="Customer price"))
    console.print(
        f"Provider fee: [bold]${result.fee.fee}[/bold] "
        f"({result.fee.hours_worked} h at ${result.fee.hourly_rate}/h, {result.fee.rate_type.value})"
    )


@app.command()
def reschedule(
    original_price: Annotated[str, typer.Argument(help="Price the customer already paid")],
    original_at: Annotated[str, typer.Option("--from", help="Original start (YYYY-MM-DD HH:mm)")],
    new_at: Annotated[str, typer.Option("--to", help="New start (YYYY-MM-DD HH:mm)")],
    config_file: ConfigOption = None,
):
    """
    Show what moving a booking to a new time costs.

    Examples:

        bookingengine reschedule 120 --from "2026-11-16 10:00" --to "2026-11-21 10:00"
    """
    try:
        config, service_layer = _load(config_file)
        result = asyncio.run(
            service_layer.reschedule_price(
                _money(original_price),
                pendulum.from_format(original_at, "YYYY-MM-DD HH:mm", tz=config.timezone),
                pendulum.from_format(new_at, "YYYY-MM-DD HH:mm", tz=config.timezone),
            )
        )
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    table = Table(show_header=False)
    table.add_row("Original price", f"${result.original_price:.2f}")
    table.add_row("Time uplift", f"{result.original_uplift_percentage}% -> {result.new_uplift_percentage}%")
    table.add_row("New price", f"[bold]${result.new_price:.2f}[/bold]")
    table.add_row("To pay", f"${result.difference:.2f}")
    console.print(table)
    if not result.has_extra_charge:
        console.print("[green]No additional charge.[/green]")


@app.command()
def fee(
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start_time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Total duration in minutes")] = 60,
    providers_count: Annotated[int, typer.Option("--providers", help="Number of providers")] = 1,
    arrangement: Annotated[ServiceArrangement, typer.Option("--arrangement", help="split or multiply")] = ServiceArrangement.SPLIT,
    config_file: ConfigOption = None,
):
    """
    Calculate one provider's fee for a job.
    """
    try:
        config_path = config_file or get_default_config_path()
        config = EngineConfig.load_from_yaml(config_path)
        on_date = pendulum.from_format(date, "YYYY-MM-DD", tz=config.timezone).date()
        result = FeeCalculator(config.business_rules.to_business_rules()).therapist_fee(
            on_date, parse_time(start_time), duration, providers_count, arrangement
        )
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    table = Table(show_header=False)
    table.add_row("Rate type", result.rate_type.value)
    table.add_row("Hourly rate", f"${result.hourly_rate}")
    table.add_row("Hours worked", str(result.hours_worked))
    table.add_row("Fee", f"[bold]${result.fee}[/bold]")
    console.print(table)


@app.command()
def quote(
    base_price: Annotated[str, typer.Argument(help="Hourly base price")],
    days: Annotated[List[str], typer.Option("--day", help="Quote day as 'YYYY-MM-DD HH:MM-HH:MM' (repeatable)")],
    sessions: Annotated[int, typer.Option("--sessions", help="Number of sessions")] = 1,
    session_minutes: Annotated[int, typer.Option("--session-minutes", help="Minutes per session")] = 60,
    itemised: Annotated[bool, typer.Option("--itemised", help="Also show per-day amounts.")] = False,
    lat: Annotated[Optional[float], typer.Option("--lat", help="Event latitude")] = None,
    lng: Annotated[Optional[float], typer.Option("--lng", help="Event longitude")] = None,
    config_file: ConfigOption = None,
):
    """
    Validate and price a multi-day quote.

    Examples:

        bookingengine quote 120 --sessions 4 --session-minutes 60 \\
            --day "2026-11-14 10:00-12:00" --day "2026-11-16 10:00-12:00"
    """
    try:
        config, service_layer = _load(config_file)
        quote_days = [_parse_quote_day(i, d, config.timezone) for i, d in enumerate(days, 1)]
        draft = Quote(days=quote_days, number_of_sessions=sessions, session_duration_minutes=session_minutes)
        validation = draft.validate(
            QuoteTimeValidator(config.pricing.minimum_quote_minutes),
            today=pendulum.today(config.timezone).date(),
        )
        if not validation.ok:
            for message in validation.errors:
                console.print(f"[red]✗[/red] {message}")
            raise typer.Exit(1)

        engine = asyncio.run(service_layer.pricing_engine())
        estimate = draft.price(engine, _money(base_price))
        breakdown = engine.itemised_quote(_money(base_price), quote_days) if itemised else None
        availability = None
        if lat is not None and lng is not None:
            availability = asyncio.run(
                service_layer.check_quote_availability(
                    quote_days, _location(lat, lng), total_minutes=draft.requirement_minutes
                )
            )
    except (FileNotFoundError, ValueError, BookingEngineError) as e:
        _fail(e)

    console.print(
        f"Scheduled {validation.schedule_minutes} minutes "
        f"(average session {validation.average_session_minutes} minutes)"
    )
    console.print(Panel.fit(
        f"[bold]Estimate:[/bold] {estimate.display()}\n"
        f"Base: ${estimate.base_amount}  x{estimate.average_multiplier:.4f}  = ${estimate.actual}",
        title="Quote"
    ))

    if breakdown is not None:
        table = Table(title="Per-day amounts", show_header=True, header_style="bold cyan")
        table.add_column("Day")
        table.add_column("Date")
        table.add_column("Minutes", justify="right")
        table.add_column("Multiplier", justify="right")
        table.add_column("Amount", justify="right")
        for item in breakdown.days:
            table.add_row(
                str(item.day.day_number),
                item.day.date.isoformat(),
                str(item.minutes),
                f"{item.multiplier:.2f}",
                f"${item.amount}",
            )
        table.add_row("", "Total", "", "", f"[bold]${breakdown.total_amount}[/bold]")
        console.print(table)

    if availability is not None:
        for day in availability.days:
            console.print(
                f"Day {day.day.day_number}: {day.status.value} "
                f"({len(day.providers)}/{day.providers_required} providers)"
            )
            if day.alternatives:
                console.print(
                    "  Alternatives: " + ", ".join(d.isoformat() for d in day.alternatives)
                )


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
