"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.firebase_authenticator import FirebaseAuthenticator
from ..adapters.firestore_client import FirestoreDocumentStore
from ..adapters.json_store import JsonFileDocumentStore
from ..adapters.local_authenticator import LocalAuthenticator
from ..adapters.session_cache import SessionCache
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import CampSlotsError, NotFound
from ..domain.models import Camp, CampDraft, CampFilter, Registration, Role
from ..services.camp_service import CampService
from ..services.identity import IdentityService

app = typer.Typer(
    name="campslots",
    help="Schedule blood donation camps and book donor slots",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _load_config(config_file: Optional[Path]) -> AppConfig:
    """Load the given config file, the default one, or built-in defaults."""
    if config_file:
        return AppConfig.load_from_yaml(config_file)

    config_path = get_default_config_path()
    if config_path.exists():
        return AppConfig.load_from_yaml(config_path)
    return AppConfig()


def _configure_logging(config: AppConfig, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.get_log_level(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _build_services(config: AppConfig) -> Tuple[CampService, IdentityService]:
    """Wire the store and identity adapters selected by the config."""
    cache = SessionCache(
        key=config.session_key(),
        cache_file=config.get_session_file(),
        use_keyring=config.use_keyring,
    )

    if config.backend == "firestore":
        authenticator = FirebaseAuthenticator(api_key=config.firebase.api_key, cache=cache)
        store = FirestoreDocumentStore(
            project_id=config.firebase.project_id,
            token_provider=authenticator.get_id_token,
            database=config.firebase.database,
        )
    else:
        store = JsonFileDocumentStore(config.data_file)
        authenticator = LocalAuthenticator(store=store, cache=cache)

    camp_service = CampService(
        store,
        timezone=config.timezone,
        max_retries=config.scheduling.max_retries,
    )
    return camp_service, IdentityService(authenticator, store)


def _setup(config_file: Optional[Path], verbose: bool) -> Tuple[AppConfig, CampService, IdentityService]:
    config = _load_config(config_file)
    _configure_logging(config, verbose)
    camp_service, identity = _build_services(config)
    return config, camp_service, identity


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _camp_table(camps: List[Camp], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold yellow")
    table.add_column("Venue")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Free", justify="right")

    for camp in camps:
        free = camp.available_slots()
        style = "red" if free == 0 else "green"
        table.add_row(
            camp.id,
            camp.title,
            camp.venue,
            camp.day().format("ddd, MMM D, YYYY"),
            f"{camp.start_time} – {camp.end_time}",
            f"[{style}]{free}/{camp.total_slots()}[/{style}]",
        )
    return table


@app.command()
def signup(
    email: Annotated[str, typer.Argument(help="E-mail address")],
    name: Annotated[str, typer.Option("--name", "-n", help="Display name")],
    role: Annotated[Role, typer.Option("--role", "-r", help="donor or organizer")] = Role.DONOR,
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True)] = "",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Create an account and sign in.
    """
    try:
        _, _, identity = _setup(config_file, verbose)
        profile = identity.sign_up(email, password, name, role)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Signed up {profile.email} as {profile.role.value}.[/green]\n")


@app.command()
def login(
    email: Annotated[str, typer.Argument(help="E-mail address")],
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True)] = "",
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Sign in to an existing account.
    """
    try:
        _, _, identity = _setup(config_file, verbose)
        profile = identity.sign_in(email, password)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Signed in as {profile.name} ({profile.role.value}).[/green]\n")


@app.command()
def logout(config_file: ConfigOption = None):
    """
    Forget the signed-in session.
    """
    try:
        _, _, identity = _setup(config_file, False)
        identity.sign_out()
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("\n[green]✓ Signed out.[/green]\n")


@app.command()
def whoami(config_file: ConfigOption = None):
    """
    Show the signed-in user.
    """
    try:
        _, _, identity = _setup(config_file, False)
        profile = identity.current_user()
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if profile is None:
        console.print("[yellow]Not signed in.[/yellow]")
        return

    console.print(Panel.fit(
        f"[bold]Name:[/bold] {profile.name}\n"
        f"[bold]E-mail:[/bold] {profile.email}\n"
        f"[bold]Role:[/bold] {profile.role.value}",
        title="Signed in"
    ))


@app.command("create-camp")
def create_camp(
    title: Annotated[str, typer.Option("--title", "-t", help="Camp title")],
    venue: Annotated[str, typer.Option("--venue", help="Venue")],
    date: Annotated[str, typer.Option("--date", "-d", help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Option("--start", help="Start time (HH:MM)")],
    end: Annotated[str, typer.Option("--end", help="End time (HH:MM)")],
    interval: Annotated[Optional[int], typer.Option("--interval", "-i", help="Slot interval in minutes")] = None,
    capacity: Annotated[Optional[int], typer.Option("--capacity", help="Donors per slot")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Create a camp and generate its slots (organizers only).

    Example:

        campslots create-camp -t "City Drive" --venue "Town Hall" -d 2025-03-01 --start 09:00 --end 13:00
    """
    try:
        config, service, identity = _setup(config_file, verbose)
        caller = identity.require_caller()
        draft = CampDraft(
            title=title,
            venue=venue,
            date=date,
            start_time=start,
            end_time=end,
            slot_interval=interval if interval is not None else config.defaults.slot_interval,
            slot_capacity=capacity if capacity is not None else config.defaults.slot_capacity,
        )
        camp = service.create_camp(caller, draft)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Created camp {camp.id}[/bold green]")
    console.print(f"  {camp.format_display()}\n")
    if not camp.slots:
        console.print("[yellow]⚠ No whole slot fits into the time window.[/yellow]\n")


@app.command()
def camps(
    mine: Annotated[bool, typer.Option("--mine", help="Only camps I organize.")] = False,
    show_all: Annotated[bool, typer.Option("--all", help="Include past camps.")] = False,
    available: Annotated[bool, typer.Option("--available", help="Only camps with free slots.")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List camps.
    """
    try:
        _, service, identity = _setup(config_file, verbose)
        camp_filter = CampFilter(upcoming_only=not show_all, available_only=available)
        stats = None
        if mine:
            caller = identity.require_caller()
            camp_filter.organizer_id = caller.user_id
            if caller.is_organizer:
                stats = service.organizer_stats(caller)
        camp_list = service.list_camps(camp_filter)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if stats is not None:
        console.print(Panel.fit(
            f"[bold]Total camps:[/bold] {stats.total_camps}\n"
            f"[bold]Active registrations:[/bold] {stats.active_registrations}\n"
            f"[bold]Avg. fill rate:[/bold] {stats.average_fill_rate}%",
            title="My Camps"
        ))

    if not camp_list:
        console.print("[yellow]No camps found.[/yellow]")
        return

    console.print()
    console.print(_camp_table(camp_list, "Blood Donation Camps"))
    console.print()


@app.command()
def show(
    camp_id: Annotated[str, typer.Argument(help="Camp ID")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show a camp and its slots per period.
    """
    try:
        _, service, _ = _setup(config_file, verbose)
        camp = service.get_camp(camp_id)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(Panel.fit(camp.format_display(), title=camp.title))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Period")
    table.add_column("Free", justify="right")
    table.add_column("Booked", justify="right")
    for period_start, period_end, free, total in camp.slots_by_period():
        table.add_row(f"{period_start} – {period_end}", str(free), str(total - free))
    console.print(table)


@app.command()
def register(
    camp_id: Annotated[str, typer.Argument(help="Camp ID")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Book the earliest free slot of a camp (donors only).
    """
    try:
        _, service, identity = _setup(config_file, verbose)
        registration = service.register_donor(identity.require_caller(), camp_id)
        camp = service.get_camp(camp_id)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(Panel.fit(
        f"[bold]{camp.title}[/bold] at {camp.venue}\n"
        f"[bold]Date:[/bold] {camp.day().format('dddd, MMMM D, YYYY')}\n"
        f"[bold]Slot:[/bold] {registration.slot_start} – {registration.slot_end}\n"
        f"[bold]Token:[/bold] [yellow]#{registration.token}[/yellow]\n"
        f"[dim]Registration {registration.id}[/dim]",
        title="✓ Registered"
    ))


def _registration_table(registrations: List[Registration], service: CampService, with_donors: bool) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Camp")
    table.add_column("Slot")
    table.add_column("Token", style="bold yellow")
    table.add_column("Status")
    if with_donors:
        table.add_column("Donor")

    profiles = service.donor_profiles(registrations) if with_donors else {}
    titles = {}

    for registration in registrations:
        if registration.camp_id not in titles:
            try:
                titles[registration.camp_id] = service.get_camp(registration.camp_id).title
            except CampSlotsError:
                titles[registration.camp_id] = registration.camp_id

        row = [
            registration.id,
            titles[registration.camp_id],
            f"{registration.slot_start} – {registration.slot_end}",
            f"#{registration.token}",
            registration.status.value,
        ]
        if with_donors:
            profile = profiles.get(registration.donor_id)
            row.append(f"{profile.name} <{profile.email}>" if profile else "Unknown")
        table.add_row(*row)

    return table


@app.command()
def registrations(
    camp_id: Annotated[Optional[str], typer.Option("--camp", help="Registrations of one of my camps.")] = None,
    show_all: Annotated[bool, typer.Option("--all", help="Include cancelled registrations.")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List my registrations (donors) or the registrations of my camps (organizers).
    """
    try:
        _, service, identity = _setup(config_file, verbose)
        caller = identity.require_caller()

        if caller.is_donor:
            found = service.list_registrations(donor_id=caller.user_id, include_cancelled=show_all)
        else:
            if camp_id:
                camp_ids = [camp_id]
            else:
                camp_ids = [camp.id for camp in service.list_camps(CampFilter(organizer_id=caller.user_id))]
            found = []
            for current in camp_ids:
                found.extend(service.list_camp_registrations(caller, current, include_cancelled=show_all))

        if not found:
            console.print("[yellow]No registrations found.[/yellow]")
            return

        console.print()
        console.print(_registration_table(found, service, with_donors=caller.is_organizer))
        console.print(f"\n[bold]{sum(1 for reg in found if reg.is_active)}[/bold] active registration(s)\n")
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def cancel(
    registration_id: Annotated[str, typer.Argument(help="Registration ID")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Cancel a registration and free its slot.
    """
    try:
        _, service, identity = _setup(config_file, verbose)
        was_active = service.get_registration(registration_id).is_active
        registration = service.cancel_registration(identity.require_caller(), registration_id)
        try:
            service.get_camp(registration.camp_id)
            camp_exists = True
        except NotFound:
            camp_exists = False
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not was_active:
        console.print(
            f"\n[yellow]Registration {registration.id} was already {registration.status.value}; "
            f"nothing changed.[/yellow]\n"
        )
    elif not camp_exists:
        console.print(
            f"\n[green]✓ Registration {registration.id} cancelled.[/green] "
            f"[dim]Camp {registration.camp_id} no longer exists, so no slot was released.[/dim]\n"
        )
    else:
        console.print(
            f"\n[green]✓ Registration {registration.id} cancelled; "
            f"slot {registration.slot_start} – {registration.slot_end} released.[/green]\n"
        )


@app.command("delete-camp")
def delete_camp(
    camp_id: Annotated[str, typer.Argument(help="Camp ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Delete a camp and all of its registrations (organizers only).
    """
    if not yes:
        typer.confirm(
            f"Delete camp {camp_id}? This action cannot be undone.",
            abort=True
        )

    try:
        _, service, identity = _setup(config_file, verbose)
        service.delete_camp(identity.require_caller(), camp_id)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Camp {camp_id} deleted.[/green]\n")


@app.command()
def audit(
    camp_id: Annotated[str, typer.Argument(help="Camp ID")],
    apply: Annotated[bool, typer.Option("--apply", help="Free slots booked without a registration.")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Check a camp's booked slots against its registrations (organizers only).
    """
    try:
        _, service, identity = _setup(config_file, verbose)
        report = service.audit_camp(identity.require_caller(), camp_id, apply=apply)
    except (CampSlotsError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if report.is_consistent:
        console.print(f"\n[green]✓ Camp {camp_id} is consistent.[/green]\n")
        return

    for slot in report.freed_slots:
        action = "freed" if report.applied else "would free"
        console.print(f"[yellow]Phantom booking[/yellow] {slot.format_display()} – {action}")
    for registration in report.orphaned_registrations:
        console.print(f"[red]Registration without slot[/red] {registration.id} {registration.format_display()}")
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]campslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
