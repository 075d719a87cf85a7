# ruff: noqa: I001
"""CLI for the ``expense_ingest`` package.

This module exposes callable command handlers (``cmd_import_statement``,
``cmd_sync``, ``cmd_link_token``, ``cmd_link``) and a Typer-based console interface. Environment
variables (``DATABASE_URL``, ``AGGREGATOR_*``) are loaded from a local
``.env`` using ``python-dotenv`` before delegating to command logic. Business
logic lives in ``expense_ingest.api`` and the pipeline modules.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import StatementFormat


def cmd_import_statement(
    csv_paths: Sequence[str],
    *,
    owner_id: str,
    fmt: str = StatementFormat.GENERIC.value,
    account_name: str | None = None,
    account_id: int | None = None,
    database_url: str | None = None,
) -> int:
    """Import one or more statement CSVs and print per-file counts.

    Output is one line per file, ``"<account_id>\\t<name>\\t<imported>\\t<skipped>"``,
    followed by an aggregate ``imported=<n> skipped=<m>`` line. Errors are
    written to stderr and a non-zero status is returned.
    """

    from .api import import_statement_files
    from .upload import NoValidTransactionsError

    try:
        result = import_statement_files(
            list(csv_paths),
            owner_id=owner_id,
            fmt=fmt,
            account_name=account_name,
            account_id=account_id,
            database_url=database_url,
        )
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1
    except PermissionError as e:
        print(f"Error: Permission denied: {e.filename}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"Error: statement is not valid UTF-8 text: {e}", file=sys.stderr)
        return 1
    except NoValidTransactionsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (LookupError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for row in result.files:
        print(f"{row.account_id}\t{row.name}\t{row.imported}\t{row.skipped}")
    print(f"imported={result.imported} skipped={result.skipped}")
    return 0


def cmd_sync(
    *,
    owner_id: str,
    item_id: str | None = None,
    database_url: str | None = None,
    reset: bool = False,
) -> int:
    """Sync an owner's external connections and print the number of new rows.

    Items that failed are listed on stderr; they do not change the exit status
    because their cursors were left at the last good page and a later sync
    resumes from there. With ``reset`` the stored cursors are cleared first so
    the feed is replayed from the start.
    """

    from .aggregator_client import AggregatorClient
    from .api import reset_sync_cursor, sync_transactions
    from .config import ConfigurationError

    try:
        client = AggregatorClient.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if reset:
        count = reset_sync_cursor(owner_id=owner_id, item_id=item_id, database_url=database_url)
        print(f"reset={count}")
    report = sync_transactions(
        owner_id=owner_id, item_id=item_id, client=client, database_url=database_url
    )

    print(f"added={report.total_added}")
    for item in report.failed_items:
        print(f"Warning: item {item.item_id} stopped early: {item.error}", file=sys.stderr)
    return 0


def cmd_link_token(*, owner_id: str) -> int:
    from .aggregator_client import AggregatorError
    from .api import create_link_token
    from .config import ConfigurationError

    try:
        token = create_link_token(owner_id=owner_id)
    except (ConfigurationError, AggregatorError) as e:
        print(f"Error: failed to create link token: {e}", file=sys.stderr)
        return 1

    print(f"link_token={token}")
    return 0


def cmd_link(
    *,
    owner_id: str,
    public_token: str,
    database_url: str | None = None,
) -> int:
    from .aggregator_client import AggregatorError
    from .api import link_connection
    from .config import ConfigurationError

    try:
        result = link_connection(
            owner_id=owner_id, public_token=public_token, database_url=database_url
        )
    except (ConfigurationError, AggregatorError) as e:
        print(f"Error: failed to link account: {e}", file=sys.stderr)
        return 1

    print(f"item={result.item_id} accounts={result.accounts} added={result.total_added}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank/card statement CSVs and sync transactions from the "
        "account-aggregation API. Loads DATABASE_URL and AGGREGATOR_* from a "
        "local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Statement CSV to import (repeat for several files).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
OWNER_OPTION: OptionInfo = typer.Option(..., "--owner-id", help="Local owner identifier.")


@app.command("import-statement")
def import_statement_cmd(
    csv_paths: Annotated[list[Path], CSV_PATH_OPTION],
    owner_id: Annotated[str, OWNER_OPTION],
    *,
    fmt: str = typer.Option(
        StatementFormat.GENERIC.value,
        "--format",
        help="Statement layout: generic or chase.",
    ),
    account_name: str | None = typer.Option(
        None, help="Display name for the created account(s)."
    ),
    account_id: int | None = typer.Option(
        None, help="Import into this existing account instead of creating new ones."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Import statement CSVs into new (or one existing) upload account."""

    code = cmd_import_statement(
        [str(p) for p in csv_paths],
        owner_id=owner_id,
        fmt=fmt,
        account_name=account_name,
        account_id=account_id,
        database_url=database_url,
    )
    raise typer.Exit(code)


@app.command("sync")
def sync_cmd(
    owner_id: Annotated[str, OWNER_OPTION],
    *,
    item_id: str | None = typer.Option(None, help="Sync only this external item."),
    reset: bool = typer.Option(
        False, "--reset", help="Clear stored cursors first and replay the feed."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Pull new settled transactions for an owner's linked connections."""

    raise typer.Exit(
        cmd_sync(owner_id=owner_id, item_id=item_id, database_url=database_url, reset=reset)
    )


@app.command("link-token")
def link_token_cmd(owner_id: Annotated[str, OWNER_OPTION]) -> None:
    """Create a link token to start connecting an institution."""

    raise typer.Exit(cmd_link_token(owner_id=owner_id))


@app.command("link")
def link_cmd(
    owner_id: Annotated[str, OWNER_OPTION],
    *,
    public_token: str = typer.Option(..., help="Public token returned by the link flow."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Attach a newly linked connection and run its first sync."""

    raise typer.Exit(
        cmd_link(owner_id=owner_id, public_token=public_token, database_url=database_url)
    )


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to EXPENSE_INGEST_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
