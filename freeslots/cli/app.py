"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ConfigurationError, FreeSlotsError
from ..domain.models import SearchWindow
from ..domain.slot_calculator import SlotCalculator
from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.graph_client import GraphCalendarClient
from ..adapters.mock_calendar_client import MockCalendarClient
from ..services.free_slot_finder import CalendarClientProtocol, FreeSlotFinderService

app = typer.Typer(
    name="freeslots",
    help="List meeting slots in which every calendar is free",
    add_completion=False
)

console = Console()

DEFAULT_SEARCH_DAYS = 7


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    return AppConfig.load_from_yaml(config_file or get_default_config_path())


def _parse_date(value: str, tz: str, label: str):
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz)
    except ValueError as e:
        raise ConfigurationError(f"Could not parse {label} '{value}' (expected YYYY-MM-DD): {e}") from e


def _determine_window(
    *,
    config: AppConfig,
    this_week: bool,
    next_week: bool,
    start_option: Optional[str],
    end_option: Optional[str]
) -> SearchWindow:
    """
    Resolve the search window from shortcut flags, explicit dates or the
    config file, falling back to the next seven days.
    """
    tz = config.timezone

    if this_week and next_week:
        raise ConfigurationError("--this-week and --next-week cannot be combined.")

    now = pendulum.now(tz)

    if this_week:
        return SearchWindow(start=now, end=now.end_of("week"))

    if next_week:
        next_monday = now.next(pendulum.MONDAY).start_of("day")
        return SearchWindow(start=next_monday, end=next_monday.add(days=6).end_of("day"))

    if not start_option and not end_option:
        configured = config.get_search_window()
        if configured is not None:
            return configured

    if start_option:
        start_date = _parse_date(start_option, tz, "start date").start_of("day")
    else:
        start_date = now.start_of("day")

    if end_option:
        end_date = _parse_date(end_option, tz, "end date").end_of("day")
    else:
        end_date = start_date.add(days=DEFAULT_SEARCH_DAYS).end_of("day")

    try:
        return SearchWindow(start=start_date, end=end_date)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _build_calendar_client(config: AppConfig, mock: bool) -> CalendarClientProtocol:
    if mock:
        return MockCalendarClient(data_file=config.mock_data_file)

    config.require_graph_credentials()
    authenticator = GraphAuthenticator(
        client_id=config.client_id,
        tenant_id=config.tenant_id,
        authority_url=config.get_authority_url()
    )
    return GraphCalendarClient(access_token=authenticator.get_access_token())


@app.command()
def find(
    calendars: Annotated[Optional[List[str]], typer.Argument(help="Calendar names or ids. Defaults to all configured calendars.")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    min_minutes: Annotated[Optional[int], typer.Option("--min-minutes", "-m", help="Minimum slot length in minutes")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Also write the result text to this file")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock calendar data and skip authentication.")] = False,
    this_week: Annotated[bool, typer.Option("--this-week", help="Search from now until the end of this week.")] = False,
    next_week: Annotated[bool, typer.Option("--next-week", help="Search next week (Monday-Sunday).")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    List free slots shared by all given calendars.

    Examples:

        freeslots find
        freeslots find alice bob --next-week
        freeslots find alice carol@example.com --start 2024-11-25 --end 2024-11-29
        freeslots find --mock --min-minutes 60 --output result.txt
    """
    _configure_logging(verbose)

    try:
        config = _load_config(config_file)
        calendar_ids = config.resolve_calendars(calendars or [])
        window = _determine_window(
            config=config,
            this_week=this_week,
            next_week=next_week,
            start_option=start,
            end_option=end
        )

        business_hours = config.business_hours.to_business_hours()
        if min_minutes is not None:
            if min_minutes <= 0:
                raise ConfigurationError("--min-minutes must be greater than zero")
            business_hours.minimum_minutes = min_minutes

        console.print("[bold cyan]Search summary[/bold cyan]")
        console.print(f"   Calendars: {', '.join(calendar_ids)}")
        console.print(f"   Window: {window.start.format('YYYY-MM-DD HH:mm')} - {window.end.format('YYYY-MM-DD HH:mm')}")
        console.print(
            f"   Business hours: {business_hours.start_time.strftime('%H:%M')} - "
            f"{business_hours.end_time.strftime('%H:%M')}, at least {business_hours.minimum_minutes} minutes"
        )
        if mock:
            console.print("[yellow]Mock mode: using calendar data from file[/yellow]")
        console.print()

        service = FreeSlotFinderService(
            calendar_client=_build_calendar_client(config, mock),
            slot_calculator=SlotCalculator(business_hours=business_hours),
            timezone=config.timezone,
        )
        text = service.find_slots_text(calendar_ids=calendar_ids, window=window)

        if text:
            console.print(text, markup=False, highlight=False, soft_wrap=True)
        else:
            console.print("[yellow]No free slots found.[/yellow] Try a longer window or a shorter minimum length.")

        destination = output or config.output_file
        if destination is not None:
            destination.write_text(text, encoding="utf-8")
            console.print(f"\n[green]Result written to {destination}[/green]")

    except (FreeSlotsError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(1)


@app.command()
def list_calendars(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    List all configured calendars.
    """
    try:
        config = _load_config(config_file)
    except FreeSlotsError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not config.calendars:
        console.print("[yellow]No calendars defined in the config file.[/yellow]")
        return

    table = Table(title="Configured calendars", show_header=True, header_style="bold cyan")
    table.add_column("Name (alias)", style="bold yellow")
    table.add_column("Calendar id", style="dim")

    for calendar in config.calendars:
        table.add_row(calendar.name, calendar.calendar_id)

    console.print(table)


@app.command()
def test_auth(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
    force: bool = typer.Option(False, "--force", help="Force re-authentication")
):
    """
    Test Microsoft Graph authentication.
    """
    try:
        config = _load_config(config_file)
        config.require_graph_credentials()

        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url()
        )
        client = GraphCalendarClient(access_token=authenticator.get_access_token(force_refresh=force))
        user_info = client.test_connection()
    except FreeSlotsError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]Authentication successful[/bold green]\n\n"
        f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
        f"[bold]Mail:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}\n"
        f"[bold]Token cache:[/bold] {authenticator.cache_backend}",
        title="Connection test"
    ))


@app.command()
def clear_cache(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file")
):
    """
    Clear the authentication token cache.
    """
    try:
        config = _load_config(config_file)
        config.require_graph_credentials()
    except FreeSlotsError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    GraphAuthenticator(client_id=config.client_id, tenant_id=config.tenant_id).clear_cache()
    console.print("[green]Token cache cleared.[/green] You will need to sign in again next time.")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"[bold cyan]freeslots[/bold cyan] version [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
