"""
Collaboration relay CLI.

Command-line interface for running and inspecting the relay.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from collab_relay.config.settings import get_settings

app = typer.Typer(
    name="collab-relay",
    help="Collaboration session relay CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (default: RELAY_HOST)"),
    port: int = typer.Option(None, help="Port (default: RELAY_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the relay under uvicorn."""
    import uvicorn

    settings = get_settings()
    bind_host = host or settings.relay_host
    bind_port = port or settings.relay_port
    console.print(f"[blue]Starting relay on ws://{bind_host}:{bind_port}/ws[/blue]")

    uvicorn.run(
        "collab_relay.main:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_config=None,  # setup_logging() owns the handlers
    )


@app.command("config")
def show_config():
    """Print the effective settings."""
    settings = get_settings()

    table = Table(title="Relay Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.model_dump().items():
        if name == "history_database_url" and value:
            value = _mask_url(value)
        table.add_row(name, str(value))

    console.print(table)

    problems = settings.validate_production_settings()
    for problem in problems:
        console.print(f"[red]✗ {problem}[/red]")
    if problems:
        raise typer.Exit(1)


def _mask_url(url: str) -> str:
    """Hide the password part of a database URL."""
    from sqlalchemy.engine import make_url

    return make_url(url).render_as_string(hide_password=True)


# =============================================================================
# History Commands
# =============================================================================

@app.command()
def history(
    database_url: str = typer.Option(None, "--db", help="Database URL (default: HISTORY_DATABASE_URL)"),
    limit: int = typer.Option(10, help="Max rows per table"),
):
    """Show recent sessions, active members, prompts, answers and feedback."""
    from collab_relay.infrastructure.db import build_engine, build_session_factory, session_scope
    from collab_relay.persistence import queries

    url = database_url or get_settings().history_database_url
    if not url:
        console.print("[red]No history database configured (set HISTORY_DATABASE_URL or use --db)[/red]")
        raise typer.Exit(1)

    engine = build_engine(url)
    try:
        with session_scope(build_session_factory(engine)) as db:
            table = Table(title="Sessions")
            for column in ("Session", "Host connection", "Created", "Closed"):
                table.add_column(column, style="cyan" if column == "Session" else None)
            for row in queries.latest_sessions(db, limit):
                table.add_row(row.session_id, row.host_connection or "-", str(row.created_at), str(row.closed_at or "-"))
            console.print(table)

            table = Table(title="Members (active)")
            for column in ("Session", "Name", "Joined"):
                table.add_column(column)
            for row in queries.active_members(db, limit * 2):
                table.add_row(row.session_id, row.name, str(row.joined_at))
            console.print(table)

            table = Table(title="Prompts (latest)")
            for column in ("Session", "Preview", "Set at"):
                table.add_column(column)
            for row in queries.latest_prompts(db, limit):
                table.add_row(row.session_id, queries.preview(row.text, 50), str(row.set_at))
            console.print(table)

            table = Table(title="Answers (latest)")
            for column in ("Session", "Member", "File", "Size", "Created"):
                table.add_column(column)
            for row in queries.latest_answers(db, limit):
                table.add_row(row.session_id, row.member, row.filename or "-", str(len(row.payload)), str(row.created_at))
            console.print(table)

            table = Table(title="Feedback (latest)")
            for column in ("Session", "To", "Preview", "Created"):
                table.add_column(column)
            for row in queries.latest_feedback(db, limit):
                table.add_row(row.session_id, row.to_member or "-", queries.preview(row.text, 40), str(row.created_at))
            console.print(table)
    except Exception as e:
        console.print(f"[red]✗ Could not read history: {e}[/red]")
        raise typer.Exit(1)
    finally:
        engine.dispose()


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option(None, help="Health URL (default: local relay)"),
):
    """Check a running relay's health endpoint."""
    import time

    import httpx

    settings = get_settings()
    target = url or f"http://localhost:{settings.relay_port}/ws/health"

    table = Table(title="Relay Health")
    table.add_column("Check", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Response Time", style="yellow")

    try:
        start = time.time()
        response = httpx.get(target, timeout=5.0)
        elapsed = (time.time() - start) * 1000
    except httpx.HTTPError as e:
        table.add_row(target, f"✗ {type(e).__name__}", "-")
        console.print(table)
        raise typer.Exit(1)

    if response.status_code == 200:
        body = response.json()
        table.add_row(target, "✓ Healthy", f"{elapsed:.0f}ms")
        table.add_row("Connections", str(body.get("connections", "?")), "")
        table.add_row("Sessions", str(body.get("sessions", "?")), "")
        console.print(table)
    else:
        table.add_row(target, f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
        console.print(table)
        raise typer.Exit(1)


@app.command()
def ws_test(
    url: str = typer.Option(None, help="WebSocket URL (default: local relay)"),
):
    """Test WebSocket connectivity with a heartbeat round trip."""
    import asyncio

    import websockets

    target = url or f"ws://localhost:{get_settings().relay_port}/ws"

    async def _test():
        console.print(f"[blue]Testing WebSocket: {target}[/blue]")
        try:
            async with websockets.connect(target, close_timeout=5) as ws:
                await ws.send('{"type": "ping"}')
                response = await asyncio.wait_for(ws.recv(), timeout=5)
                console.print(f"[green]✓ Connected! Response: {response}[/green]")
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
            raise typer.Exit(1)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")
            raise typer.Exit(1)

    asyncio.run(_test())


if __name__ == "__main__":
    app()
