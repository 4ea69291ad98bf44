"""
Command-line tools for operating KPIGate.
"""

import asyncio
import sys
from typing import Optional

import typer

from src.kpigate.config import get_settings
from src.kpigate.core.credentials import hash_password, verify_password
from src.kpigate.core.database import Database

app = typer.Typer(help="KPIGate administration CLI.")


@app.command("hash-password")
def hash_password_command(
    password: str = typer.Argument(..., help="Password to hash."),
    iterations: Optional[int] = typer.Option(
        None,
        "--iterations",
        "-i",
        help="PBKDF2 iterations (default from settings).",
    ),
) -> None:
    """
    Hash a password for the investor_password.password_hash column.
    """
    rounds = iterations or get_settings().security.pbkdf2_iterations

    if len(password) < 8:
        typer.echo(
            "Warning: Password is less than 8 characters. Consider using a stronger password.",
            err=True,
        )

    stored = hash_password(password, iterations=rounds)
    if not verify_password(password, stored):
        typer.echo("Verification failed! Hash is invalid.", err=True)
        raise typer.Exit(code=1)

    typer.echo(stored)
    typer.echo("")
    typer.echo("UPDATE investor_password")
    typer.echo(f"SET password_hash = '{stored}'")
    typer.echo("WHERE id = 'your-user-id';")
    typer.echo("")
    typer.echo(f"PBKDF2-HMAC-SHA256, {rounds} iterations, 16-byte salt, 32-byte hash.")


@app.command("init-db")
def init_db() -> None:
    """
    Create any missing tables in the configured database.
    """
    settings = get_settings()

    async def _run() -> None:
        database = Database(settings.database)
        try:
            await database.create_tables()
        finally:
            await database.close()

    asyncio.run(_run())
    typer.echo("Tables ready.")


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """
    Run the API with uvicorn using the configured host and port.
    """
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.kpigate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=reload or settings.debug,
    )


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
