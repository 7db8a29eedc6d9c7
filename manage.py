import asyncio
from datetime import datetime, timedelta, timezone
from typing import Annotated

from rich import print
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import typer

from homeservices_auth.db import AsyncSessionLocal, dispose_db, init_db
from homeservices_auth.db.crud import user_db
from homeservices_auth.exceptions.types import AppException
from homeservices_auth.services import BrevoNotificationDispatcher, OTPService, build_auth_service

app = typer.Typer()


async def init_db_task() -> None:
    """Create every table registered on the metadata."""
    print("[yellow]Creating database tables[/yellow]")
    try:
        await init_db()
        print("[green]Database tables created[/green]")
    finally:
        await dispose_db()


async def purge_otps_task(
    older_than_hours: int = 0,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> int:
    """
    Delete OTP tokens that expired more than ``older_than_hours`` ago.

    Returns:
        int: The number of tokens deleted.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
    dispatcher = BrevoNotificationDispatcher()
    otp_service = OTPService(dispatcher=dispatcher)
    try:
        async with session_factory() as session:
            count = await otp_service.purge_expired(session, older_than=cutoff)
    finally:
        await dispatcher.aclose()

    print(f"[green]Purged {count} expired OTP token(s)[/green]")
    return count


async def unlock_user_task(
    email: str,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> bool:
    """
    Clear the lockout of the user with ``email``.

    Returns:
        bool: False if no such user exists.
    """
    dispatcher = BrevoNotificationDispatcher()
    auth_service = build_auth_service(dispatcher=dispatcher)
    try:
        async with session_factory() as session:
            user = await user_db.get_by_email(session, email)
            if user is None:
                print(f"[red]No user with email {email}[/red]")
                return False
            await auth_service.unlock_user(session, user.id)
    finally:
        await dispatcher.aclose()

    print(f"[green]Unlocked {email}[/green]")
    return True


@app.command()
def initdb():
    """
    Create the database tables.

    Usage:
        python manage.py initdb
    """
    asyncio.run(init_db_task())


@app.command()
def purgeotps(
    older_than_hours: Annotated[
        int,
        typer.Option(
            "--older-than-hours",
            "-o",
            min=0,
            help="Only delete tokens that expired at least this many hours ago.",
        ),
    ] = 0,
):
    """
    Delete expired OTP tokens.

    Examples:
        python manage.py purgeotps
        python manage.py purgeotps --older-than-hours 24
    """
    try:
        asyncio.run(purge_otps_task(older_than_hours))
    except AppException as e:
        print(f"[red]Purge failed:[/red] {e.message}")
        raise typer.Exit(1)


@app.command()
def unlockuser(email: Annotated[str, typer.Argument(help="Email of the locked user.")]):
    """
    Clear a user's sign-in lockout and failed attempt count.
    """
    try:
        found = asyncio.run(unlock_user_task(email.lower()))
    except AppException as e:
        print(f"[red]Unlock failed:[/red] {e.message}")
        raise typer.Exit(1)
    if not found:
        raise typer.Exit(1)


@app.callback()
def main(ctx: typer.Context):
    print(f"Executing the command: {ctx.invoked_subcommand}")


if __name__ == "__main__":
    app()
