"""
smscp CLI.

Command line surface for the account service. Commands that act as a
user take the user's claim token via --token or the SMSCP_TOKEN
environment variable; `smscp user login` prints one.

Usage:
    smscp migrate
    smscp user create alice +15551234567
    export SMSCP_TOKEN=$(smscp user login alice)
    smscp note add "buy milk"
    smscp note list --page 0
    smscp gdpr export --output alice.json
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from datetime import timedelta
from pathlib import Path
from typing import TypeVar

import click
import structlog

from smscp.builder import build_account_service
from smscp.core.config import get_app_config, validate_project_root
from smscp.core.exceptions import ApplicationError, PartialDeletionError
from smscp.core.logging import get_logger, setup_logging
from smscp.schemas.note import Note
from smscp.services.account import AccountService
from smscp.services.export import JsonExportFormatter

T = TypeVar("T")

logger = get_logger(__name__)

token_option = click.option(
    "--token", "-t",
    envvar="SMSCP_TOKEN",
    required=True,
    help="User claim token (or set SMSCP_TOKEN).",
)


def configure(verbose: bool, debug: bool) -> None:
    """Validate the working directory and set up logging for the CLI."""
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(level=log_level, format_type="console")
    structlog.contextvars.bind_contextvars(source="cli")


class ConsoleNotificationSender:
    """NotificationSender for a terminal session: outbound messages go to stderr."""

    async def send(self, destination: str, text: str) -> None:
        click.echo(click.style(f"[sms to ...{destination[-4:]}] {text}", fg="cyan"), err=True)


def run(work: Callable[[AccountService], Awaitable[T]]) -> T:
    """
    Build the service, run one operation, and release storage.

    Application errors are printed in red and exit with status 1.
    """
    async def _main() -> T:
        service = build_account_service(ConsoleNotificationSender())
        try:
            return await work(service)
        finally:
            await service.storage.close()

    try:
        return asyncio.run(_main())
    except PartialDeletionError as e:
        logger.error("Partial deletion", extra={"user_id": e.user_id, "notes_deleted": e.notes_deleted})
        click.echo(
            click.style(
                f"Error: {e.message} (user {e.user_id}, {e.notes_deleted} notes removed)",
                fg="red",
            ),
            err=True,
        )
        sys.exit(1)
    except ApplicationError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)


def echo_note(note: Note | None) -> None:
    if note is None:
        click.echo("No note.")
        return
    click.echo(f"[{note.id}] {note.created_at:%Y-%m-%d %H:%M:%S} {note.short}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output (INFO level logging).")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output (DEBUG level logging).")
def main(verbose: bool, debug: bool) -> None:
    """smscp command line: accounts, notes and data export."""
    configure(verbose, debug)


@main.command()
@click.option("--key", prompt=True, hide_input=True, help="Migration key.")
def migrate(key: str) -> None:
    """Create tables or collections. Safe to repeat."""
    run(lambda service: service.migrate(key))
    click.echo(click.style("Migration applied.", fg="green"))


@main.command()
def config() -> None:
    """Display non-secret configuration."""
    app_config = get_app_config()
    app = app_config.application
    db = app_config.database
    click.echo(f"Application: {app.name} {app.version} ({app.environment})")
    click.echo(f"Base URL:    {app.base_url}")
    click.echo(f"Backend:     {db.backend}")
    if db.backend == "document":
        click.echo(f"Database:    {db.document.host}:{db.document.port}/{db.document.name}")
    else:
        click.echo(f"Database:    {db.relational.driver} {db.relational.host}:{db.relational.port}/{db.relational.name}")
    click.echo(f"Page size:   {app.notes.page_size}")


@main.command()
@click.argument("origin")
@click.argument("text")
def inbound(origin: str, text: str) -> None:
    """Store TEXT as a note for the user whose phone is ORIGIN."""
    note = run(lambda service: service.receive_message(origin, text))
    click.echo(f"Stored note {note.id}.")


# =============================================================================
# user
# =============================================================================


@main.group()
def user() -> None:
    """Account commands."""


@user.command("create")
@click.argument("username")
@click.argument("phone")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def user_create(username: str, phone: str, password: str) -> None:
    """Create an account and print its token."""
    account = run(lambda service: service.create_account(username, password, password, phone))
    click.echo(account.token)


@user.command("login")
@click.argument("username")
@click.option("--password", prompt=True, hide_input=True)
def user_login(username: str, password: str) -> None:
    """Log in and print a token."""
    account = run(lambda service: service.login(username, password))
    click.echo(account.token)


@user.command("show")
@token_option
def user_show(token: str) -> None:
    """Show the account a token names."""
    account = run(lambda service: service.current_user(token))
    click.echo(f"{account.id}\t{account.username}\t{account.phone}")


@user.command("update")
@token_option
@click.option("--username", default=None)
@click.option("--phone", default=None)
@click.option("--password", default=None, hide_input=True)
def user_update(token: str, username: str | None, phone: str | None, password: str | None) -> None:
    """Change username, phone or password; prints a fresh token."""
    account = run(
        lambda service: service.update_account(
            token,
            username=username,
            password=password,
            verify=password,
            phone=phone,
        )
    )
    click.echo(account.token)


@user.command("forgot-password")
@click.argument("username")
def user_forgot_password(username: str) -> None:
    """Send a password reset link to the account's phone (printed to stderr)."""
    run(lambda service: service.forgot_password(username))
    click.echo("Reset link sent.")


@user.command("reset-password")
@click.argument("reset_token")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def user_reset_password(reset_token: str, password: str) -> None:
    """Set a new password using a reset token; prints a fresh token."""
    account = run(lambda service: service.reset_password(reset_token, password, password))
    click.echo(account.token)


# =============================================================================
# note
# =============================================================================


@main.group()
def note() -> None:
    """Note commands."""


@note.command("add")
@token_option
@click.argument("text")
def note_add(token: str, text: str) -> None:
    """Store a note and echo it to your phone."""
    created = run(lambda service: service.create_note(token, text))
    click.echo(f"Stored note {created.id}.")


@note.command("list")
@token_option
@click.option("--page", default=0, type=int, show_default=True, help="Zero-based page.")
def note_list(token: str, page: int) -> None:
    """List notes newest first."""
    result = run(lambda service: service.list_notes(token, page))
    for item in result.notes:
        echo_note(item)
    if result.has_more:
        click.echo(f"More: --page {page + 1}")


@note.command("latest")
@token_option
def note_latest(token: str) -> None:
    """Show the first note in your history."""
    echo_note(run(lambda service: service.latest_note(token)))


@note.command("recent")
@token_option
@click.option("--minutes", default=None, type=int, help="Window size; defaults to config.")
def note_recent(token: str, minutes: int | None) -> None:
    """Show the first note created within the recent window."""
    window = None if minutes is None else timedelta(minutes=minutes)
    echo_note(run(lambda service: service.recent_note(token, window)))


# =============================================================================
# gdpr
# =============================================================================


@main.group()
def gdpr() -> None:
    """Personal data export and deletion."""


@gdpr.command("export")
@token_option
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None)
def gdpr_export(token: str, output: Path | None) -> None:
    """Export your account and notes as JSON."""
    data = run(lambda service: service.export_data(token, JsonExportFormatter()))
    if output is None:
        click.echo(data.decode("utf-8"))
    else:
        output.write_bytes(data)
        click.echo(f"Wrote {output}.")


@gdpr.command("delete")
@token_option
@click.confirmation_option(prompt="Delete your account and every note?")
def gdpr_delete(token: str) -> None:
    """Delete your account and every note."""
    run(lambda service: service.delete_account(token))
    click.echo("Account deleted.")


if __name__ == "__main__":
    main()
