#!/usr/bin/env python3
"""
Post-deploy database connectivity check.

Reads the environment's DB credential record from Secrets Manager, verifies
every field is present, connects to PostgreSQL over TLS and runs SELECT 1.
Run it from somewhere that can reach the isolated subnets (bastion, VPN,
a one-off ECS task).

Usage:
    python scripts/check_db_connection.py                    # APP_ENV or staging
    python scripts/check_db_connection.py --env production
    python scripts/check_db_connection.py --secret-id staging/diesedb/credentials-1

Exit codes: 0 = connected, 1 = secret unreadable/incomplete or connection failed.
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg
from rich.console import Console

from provisioning.config import VALID_ENVIRONMENTS, config
from provisioning.credentials import CredentialError, CredentialRecord
from provisioning.events import setup_logging
from provisioning.secret_store import db_secret_name, read_credential_record

console = Console()
logger = logging.getLogger(__name__)


def connection_kwargs(record: CredentialRecord) -> dict:
    # Records written before the endpoint/port split stored "host:port" in DB_HOST
    host = record.host.split(":")[0]
    return {
        "host": host,
        "port": record.port,
        "dbname": record.name,
        "user": record.username,
        "password": record.password,
        "sslmode": "require",
        "connect_timeout": 10,
    }


def check_connection(record: CredentialRecord) -> None:
    """Open a connection and run SELECT 1. Raises psycopg.Error on failure."""
    with psycopg.connect(**connection_kwargs(record)) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            row = cur.fetchone()
    if not row or row[0] != 1:
        raise psycopg.DataError(f"unexpected result from SELECT 1: {row!r}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check DB connectivity using the stored credentials")
    parser.add_argument("--env", default=config.APP_ENV, choices=VALID_ENVIRONMENTS)
    parser.add_argument(
        "--secret-id",
        default=None,
        help="Override the secret id (default: {env}/MAIN_DB_RESOURCE_NAME/credentials-1)",
    )
    args = parser.parse_args(argv)

    setup_logging(config.LOG_LEVEL)
    secret_id = args.secret_id or db_secret_name(args.env, config.MAIN_DB_RESOURCE_NAME)

    console.print(f"[bold cyan]Fetching[/bold cyan] {secret_id} from AWS Secrets Manager...")
    try:
        record = read_credential_record(secret_id)
    except CredentialError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    console.print(
        f"Connecting to [cyan]{record.host}:{record.port}/{record.name}[/cyan] "
        f"as [cyan]{record.username}[/cyan]..."
    )
    try:
        with console.status("[bold green]Running SELECT 1..."):
            check_connection(record)
    except psycopg.Error as e:
        logger.debug("connection failure", exc_info=True)
        console.print(f"[bold red]Failed to connect to the database:[/bold red] {e}")
        return 1

    console.print("[bold green]Database connection test successful.[/bold green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
