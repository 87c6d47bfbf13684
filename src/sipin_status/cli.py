"""sipin_status.cli

Entry point for the SIP status consumer (``sipin-status``).

Every connection option can also be set through its environment
variable (PULSAR_HOST, POSTGRES_HOST, DB_DSN, ...).  The process runs
in the foreground until interrupted; it exits non-zero when the broker
or database cannot be reached or the database connection is lost.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from sipin_status.config import (
    postgres_dsn,
    pulsar_service_url,
    resolve_topic_selection,
)
from sipin_status.consumer import ConsumerContext, PulsarSource, run_consumer
from sipin_status.shared import ConfigError, StoreError, write_run_report

log = logging.getLogger(__name__)


@click.command()
# Pulsar
@click.option("--pulsar-host", envvar="PULSAR_HOST", default="localhost", show_default=True)
@click.option("--pulsar-port", envvar="PULSAR_PORT", default="5672", show_default=True)
@click.option("--pulsar-user", envvar="PULSAR_USER", default=None, help="Basic-auth user; auth is used only when user and password are both set")
@click.option("--pulsar-passwd", envvar="PULSAR_PASSWD", default=None, help="Basic-auth password (optional)")
@click.option("--pulsar-consumer-name", envvar="PULSAR_CONSUMER_NAME", default="pulsar2db", show_default=True)
@click.option(
    "--pulsar-subscription-name",
    envvar="PULSAR_SUBSCRIPTION_NAME",
    default="pulsar2db_subscription",
    show_default=True,
)
@click.option("--pulsar-topics", envvar="PULSAR_TOPICS", default=None, help="Comma-separated topic list (default: built-in SIPIN topics)")
@click.option("--pulsar-topics-pattern", envvar="PULSAR_TOPICS_PATTERN", default=None, help="Regex topic pattern instead of a list")
@click.option("--topics-file", envvar="TOPICS_FILE", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML file with 'topics' or 'pattern'")
# Postgres
@click.option("--postgres-host", envvar="POSTGRES_HOST", default="localhost", show_default=True)
@click.option("--postgres-user", envvar="POSTGRES_USER", default="admin", show_default=True)
@click.option("--postgres-passwd", envvar="POSTGRES_PASSWD", default="admin")
@click.option("--postgres-database", envvar="POSTGRES_DATABASE", default="postgres", show_default=True)
@click.option("--db-dsn", envvar="DB_DSN", default=None, help="PostgreSQL DSN; overrides the --postgres-* options")
# Run
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/sipin_rejects.csv",
    show_default=True,
    type=click.Path(dir_okay=False),
)
@click.option("--dry-run", is_flag=True, default=False, help="Roll back every change and acknowledge nothing")
@click.option("--max-messages", default=None, type=click.IntRange(min=1), help="Stop after this many messages")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def main(
    pulsar_host: str,
    pulsar_port: str,
    pulsar_user: str | None,
    pulsar_passwd: str | None,
    pulsar_consumer_name: str,
    pulsar_subscription_name: str,
    pulsar_topics: str | None,
    pulsar_topics_pattern: str | None,
    topics_file: str | None,
    postgres_host: str,
    postgres_user: str,
    postgres_passwd: str,
    postgres_database: str,
    db_dsn: str | None,
    rejects_path: str,
    dry_run: bool,
    max_messages: int | None,
    run_id: str | None,
    log_level: str,
) -> None:
    """Consume SIP lifecycle events and keep sipin_sips up to date."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        selection = resolve_topic_selection(
            pulsar_topics,
            pulsar_topics_pattern,
            Path(topics_file) if topics_file else None,
        )
    except ConfigError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(2)

    dsn = db_dsn or postgres_dsn(postgres_user, postgres_passwd, postgres_host, postgres_database)
    service_url = pulsar_service_url(pulsar_host, pulsar_port)
    click.echo(f"[{run_id}] Starting consumer (dry_run={dry_run})")

    log.info(
        "Connecting to Pulsar on %s: %s, subscription_name=%s",
        pulsar_host, selection.describe(), pulsar_subscription_name,
    )
    try:
        source = PulsarSource(
            service_url,
            selection,
            subscription_name=pulsar_subscription_name,
            consumer_name=pulsar_consumer_name,
            user=pulsar_user,
            password=pulsar_passwd,
        )
    except Exception as exc:
        click.echo(f"[{run_id}] FATAL: cannot subscribe on {service_url}: {exc}", err=True)
        sys.exit(1)

    exit_code = 0
    with source:
        log.info("Connecting to Postgres on %s", postgres_host)
        try:
            ctx = ConsumerContext.connect(dsn, Path(rejects_path), dry_run=dry_run)
        except psycopg.Error as exc:
            click.echo(f"[{run_id}] FATAL: cannot connect to Postgres: {exc}", err=True)
            sys.exit(1)

        with ctx:
            try:
                run_consumer(ctx, source, max_messages=max_messages)
            except KeyboardInterrupt:
                click.echo(f"[{run_id}] Interrupted; shutting down.")
            except StoreError as exc:
                click.echo(f"[{run_id}] FATAL: database error, message left unacknowledged: {exc}", err=True)
                exit_code = 1

            report_path = write_run_report(
                run_id, started_at, dry_run,
                {"service_url": service_url, "topics": selection.describe()},
                ctx.counters,
            )
            click.echo(f"[{run_id}] Run report: {report_path}")

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
