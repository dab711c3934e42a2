"""Typer-based console interface for ``upiflow``.

The root callback loads a local ``.env`` (python-dotenv, without overriding
variables already set) and configures logging once. Business logic lives in
``upiflow.parser`` and ``upiflow.ledger``; commands only handle I/O and exit
codes.
"""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .ledger import (
    IngestStatus,
    LedgerLockedError,
    LedgerRepository,
    default_min_confidence,
    export_csv,
)
from .logging_setup import configure_logging
from .parser import TransactionParser, default_parser
from .storage import SqlKeyValueStore, StaticAuthGate

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Extract transactions from bank/UPI SMS text and keep a local ledger.",
)

TextArg = Annotated[str, typer.Argument(help="Message text, or '-' to read standard input.")]
DatabaseUrlOpt = Annotated[
    str | None,
    typer.Option(help="Override UPIFLOW_DATABASE_URL (defaults to a local SQLite file)."),
]


def _read_text(text: str) -> str:
    if text == "-":
        return sys.stdin.read()
    return text


def _repository(database_url: str | None) -> LedgerRepository:
    # The CLI runs as the device owner; hosts with a lock screen pass their own gate.
    return LedgerRepository(SqlKeyValueStore(database_url=database_url), StaticAuthGate(True))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


@app.command("parse")
def parse_cmd(
    text: TextArg,
    seed: Annotated[
        int | None, typer.Option(help="Seed for the confidence perturbation.")
    ] = None,
) -> None:
    """Parse one message and print the result as JSON."""

    parser = TransactionParser(seed=seed) if seed is not None else default_parser()
    result = parser.parse(_read_text(text))
    typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@app.command("check")
def check_cmd(text: TextArg) -> None:
    """Print whether the message looks like a transaction alert (exit 1 when not)."""

    if default_parser().is_transaction_message(_read_text(text)):
        typer.echo("yes")
        return
    typer.echo("no")
    raise typer.Exit(1)


@app.command("ingest")
def ingest_cmd(
    text: TextArg,
    min_confidence: Annotated[
        float | None,
        typer.Option(help="Minimum confidence to store (default UPIFLOW_MIN_CONFIDENCE or 0.5)."),
    ] = None,
    database_url: DatabaseUrlOpt = None,
) -> None:
    """Parse a message and store it in the ledger when confident enough."""

    try:
        threshold = default_min_confidence() if min_confidence is None else min_confidence
        result = _repository(database_url).ingest(
            _read_text(text), default_parser(), min_confidence=threshold
        )
    except (ValueError, LedgerLockedError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e

    if result.status in (IngestStatus.STORED, IngestStatus.DUPLICATE):
        assert result.entry is not None
        typer.echo(f"{result.status.value}\t{result.entry.id}")
        return
    detail = f"\t{result.parsed.confidence:.2f}" if result.parsed is not None else ""
    typer.echo(f"{result.status.value}{detail}")
    raise typer.Exit(1)


@app.command("list")
def list_cmd(database_url: DatabaseUrlOpt = None) -> None:
    """Print one tab-separated line per stored entry."""

    try:
        entries = _repository(database_url).all()
    except (LedgerLockedError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    for e in entries:
        typer.echo(
            "\t".join(
                [
                    e.id,
                    e.date_time.date().isoformat(),
                    e.type.value,
                    f"{e.amount:.2f}",
                    e.category or "",
                    e.description,
                ]
            )
        )


DateOpt = Annotated[datetime | None, typer.Option(formats=["%Y-%m-%d"])]


@app.command("summary")
def summary_cmd(
    start: DateOpt = None,
    end: DateOpt = None,
    database_url: DatabaseUrlOpt = None,
) -> None:
    """Print income, expense and per-category spend (default: this month, UTC)."""

    # Dates are whole UTC days; --end includes the entire day.
    lo = start.replace(tzinfo=UTC) if start is not None else None
    hi = (
        end.replace(hour=23, minute=59, second=59, microsecond=999999, tzinfo=UTC)
        if end is not None
        else None
    )
    try:
        s = _repository(database_url).summary(lo, hi)
    except (LedgerLockedError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e

    typer.echo(f"period\t{s.period_start.date().isoformat()}\t{s.period_end.date().isoformat()}")
    typer.echo(f"income\t{s.total_income:.2f}")
    typer.echo(f"expense\t{s.total_expense:.2f}")
    typer.echo(f"balance\t{s.balance:.2f}")
    typer.echo(f"count\t{s.count}")
    for c in s.categories:
        typer.echo(f"category\t{c.category}\t{c.amount:.2f}\t{c.count}\t{c.percentage:.2f}%")


@app.command("export")
def export_cmd(
    path: Annotated[Path, typer.Argument(help="Destination CSV file.", dir_okay=False)],
    database_url: DatabaseUrlOpt = None,
) -> None:
    """Write every stored entry to a CSV file."""

    try:
        entries = _repository(database_url).all()
        with open(path, "w", encoding="utf-8", newline="") as f:
            count = export_csv(entries, f)
    except (LedgerLockedError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    except OSError as e:
        typer.echo(f"Error: cannot write {path}: {e}", err=True)
        raise typer.Exit(2) from e
    typer.echo(f"exported {count} transactions to {path}")


@app.command("model-info")
def model_info_cmd() -> None:
    """Print engine information as JSON."""

    typer.echo(json.dumps(default_parser().model_info(), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
