from __future__ import annotations
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, TypeVar
import asyncio
import logging

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from .client import ApiError, RemoteApi
from .config import Settings
from .ledger import EntityType, PendingChangeLedger
from .session import NotesSession

T = TypeVar("T")

app = typer.Typer(help="Dominotes: PIN-protected notes with offline sync")
folder_app = typer.Typer(help="Manage folders")
app.add_typer(folder_app, name="folder")
console = Console()


@app.callback()
def _boot(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    pin: Optional[str] = typer.Option(None, "--pin", envvar="DOMINOTES_PIN", help="4-digit PIN"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.obj = {"pin": pin}


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as e:
        console.print(f"[red]Invalid configuration[/]: {e}")
        raise typer.Exit(1)


def _settings(ctx: typer.Context) -> Settings:
    settings = _load_settings()
    pin = ctx.obj.get("pin") if ctx.obj else None
    if not pin:
        pin = typer.prompt("PIN", hide_input=True)
    return replace(settings, pin=pin)


def _run(ctx: typer.Context, action: Callable[[NotesSession], Awaitable[T]]) -> T:
    """Open a session (logging in and syncing when online) and run ``action``."""
    settings = _settings(ctx)

    async def main() -> T:
        async with NotesSession.open(settings) as session:
            if not session.is_online:
                console.print("[yellow]Offline[/]: changes are queued until the server is back")
            return await action(session)

    try:
        return asyncio.run(main())
    except ApiError as e:
        console.print(f"[red]Error[/]: {e.message}")
        raise typer.Exit(1)
    except httpx.HTTPError as e:
        console.print(f"[red]Network error[/]: {e}")
        raise typer.Exit(1)


def _queued(session: NotesSession) -> str:
    return "" if session.is_online else " [yellow](queued)[/]"


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the API server."""
    import uvicorn

    uvicorn.run("dominotes.app:app", host=host, port=port)


@app.command("setup-pin")
def setup_pin():
    """Set (or replace) the PIN on the server."""
    pin = typer.prompt("New PIN", hide_input=True, confirmation_prompt=True)
    if len(pin) != 4 or not pin.isdigit():
        console.print("[red]PIN must be exactly 4 digits[/]")
        raise typer.Exit(1)

    settings = _load_settings()

    async def main() -> None:
        remote = RemoteApi.connect(settings.api_url)
        try:
            await remote.setup_pin(pin)
        finally:
            await remote.aclose()

    try:
        asyncio.run(main())
    except (ApiError, httpx.HTTPError) as e:
        console.print(f"[red]Error[/]: {e}")
        raise typer.Exit(1)
    console.print("[green]PIN set[/]")


@app.command()
def add(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t"),
    content: str = typer.Option("", "--content", "-c"),
    folders: Optional[List[int]] = typer.Option(None, "--folder", "-f", help="folder id, repeatable"),
):
    async def action(session: NotesSession):
        draft = session.new_note()
        n = await session.save_note(draft.id, title, content, folders or [])
        if n is None:
            console.print("[dim]Nothing to save[/]")
            return
        console.print(f"[green]Created[/] #{n.id}: {n.title}{_queued(session)}")

    _run(ctx, action)


@app.command("list")
def _list(
    ctx: typer.Context,
    folder: Optional[int] = typer.Option(None, "--folder", "-f", help="only notes in this folder"),
):
    async def action(session: NotesSession):
        if folder is not None and session.store.select_folder(folder) is None:
            console.print(f"[red]Not found[/]: folder {folder}")
            raise typer.Exit(1)
        table = Table(title="Notes")
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Title", style="bold")
        table.add_column("Folders", style="magenta")
        table.add_column("Updated")
        for n in session.visible_notes():
            table.add_row(
                str(n.id), n.title, ", ".join(f.name for f in n.folders),
                n.updated_at.isoformat(timespec="minutes"),
            )
        console.print(table)
        if session.pending_count:
            console.print(f"[yellow]{session.pending_count} changes pending[/]")

    _run(ctx, action)


@app.command()
def show(ctx: typer.Context, note_id: int):
    async def action(session: NotesSession):
        n = session.store.select_note(note_id)
        if not n:
            console.print(f"[red]Not found[/]: {note_id}")
            raise typer.Exit(1)
        console.rule(f"#{n.id} {n.title}")
        if n.folders:
            console.print(f"[dim]folders:[/] {', '.join(f.name for f in n.folders)}")
        console.print(Markdown(n.content or "_<empty>_"))

    _run(ctx, action)


@app.command()
def edit(
    ctx: typer.Context,
    note_id: int,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    folders: Optional[List[int]] = typer.Option(None, "--folder", "-f", help="replaces the folder set"),
):
    async def action(session: NotesSession):
        n = await session.save_note(note_id, title, content, folders)
        if n is None:
            console.print("[dim]Nothing to change[/]")
            return
        label = f": {n.title}" if n.title else ""
        console.print(f"[green]Updated[/] #{n.id}{label}{_queued(session)}")

    _run(ctx, action)


@app.command()
def delete(ctx: typer.Context, note_id: int):
    async def action(session: NotesSession):
        await session.delete_note(note_id)
        console.print(f"[yellow]Deleted[/] #{note_id}{_queued(session)}")

    _run(ctx, action)


@folder_app.command("add")
def folder_add(ctx: typer.Context, name: str):
    async def action(session: NotesSession):
        f = await session.create_folder(name)
        console.print(f"[green]Created[/] folder #{f.id}: {f.name}{_queued(session)}")

    _run(ctx, action)


@folder_app.command("list")
def folder_list(ctx: typer.Context):
    async def action(session: NotesSession):
        table = Table(title="Folders")
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Name", style="bold")
        table.add_column("Notes", justify="right")
        for f in session.folders:
            table.add_row(str(f.id), f.name, str(len(f.notes)))
        console.print(table)

    _run(ctx, action)


@folder_app.command("rename")
def folder_rename(ctx: typer.Context, folder_id: int, name: str):
    async def action(session: NotesSession):
        f = await session.rename_folder(folder_id, name)
        label = f.name if f else name
        console.print(f"[green]Renamed[/] folder #{folder_id}: {label}{_queued(session)}")

    _run(ctx, action)


@folder_app.command("delete")
def folder_delete(ctx: typer.Context, folder_id: int):
    async def action(session: NotesSession):
        await session.delete_folder(folder_id)
        console.print(f"[yellow]Deleted[/] folder #{folder_id}{_queued(session)}")

    _run(ctx, action)


@app.command()
def sync(ctx: typer.Context):
    """Replay queued changes now and reload from the server."""
    async def action(session: NotesSession):
        if not session.is_online:
            console.print("[red]Server unreachable[/]; nothing synced")
            raise typer.Exit(1)
        report = await session.sync()
        console.print(
            f"[green]Synced[/]: {len(report.replayed)} replayed, "
            f"{len(report.failed)} failed, {len(report.dropped)} dropped"
        )

    _run(ctx, action)


@app.command()
def pending():
    """Show changes waiting to be synced."""
    ledger = PendingChangeLedger(_load_settings().ledger_path)
    table = Table(title=f"{len(ledger)} changes pending")
    table.add_column("Type", style="magenta")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Change")
    for entity_type in EntityType:
        for key, change in ledger.entries(entity_type):
            table.add_row(entity_type.value, key, change.type)
    console.print(table)


def main():
    app()

if __name__ == "__main__":
    main()
