"""
Implements command-line commands and user interaction.
"""

import signal
import sys
import threading
from datetime import datetime
from typing import Any, Dict, Optional

import click
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gsmt import __version__
from gsmt.core.config import ConfigError, MigrationConfig
from gsmt.core.connection import SourceConnection
from gsmt.core.destination import ObjectWriter, make_s3_client
from gsmt.core.source import ObjectReader, SourceLister
from gsmt.core.transfer import FailurePolicy, TransferManager, TransferPool
from gsmt.core.transfer_log import TransferLogger, redact_uri

# Rich console for pretty output
console = Console()
err_console = Console(stderr=True)


def format_size(size: int) -> str:
    """Format size in bytes to human readable string"""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def build_config(config_file: Optional[str], options: Dict[str, Any]) -> MigrationConfig:
    """Merge config file values with command-line options and validate"""
    values = MigrationConfig.from_file(config_file) if config_file else {}
    values.update({k: v for k, v in options.items() if v is not None})

    missing = [
        name for name in ("mongo_uri", "folder", "bucket") if values.get(name) is None
    ]
    if missing:
        raise ConfigError(
            "Missing required options: "
            + ", ".join("--" + name.replace("_", "-") for name in missing)
        )
    return MigrationConfig(**values).validate()


def print_options(config: MigrationConfig):
    """Show the run options, with secrets hidden"""
    table = Table(title="Your options")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")

    for name, value in config.masked().items():
        if name == "mongo_uri":
            value = redact_uri(value)
        table.add_row(name, escape("" if value is None else str(value)))

    console.print(table)


@click.group()
@click.version_option(__version__, "--version", "-v", prog_name="gsmt")
def cli():
    """GridFS S3 Migration Tool - Copy GridFS files into an S3 bucket

    Common commands:
    \b
    - migrate        Copy every GridFS file to S3
    - logs           Show the history of migration runs
    """
    pass


@cli.command()
@click.option("--mongo-uri", "-m", envvar="GSMT_MONGO_URI",
              help="Mongo URI (mongodb://...)")
@click.option("--db-name", "-d", envvar="GSMT_DB_NAME",
              help="Database name (default: the mongo URI database)")
@click.option("--folder", "-f", envvar="GSMT_FOLDER",
              help="Key prefix in the bucket (empty string for none)")
@click.option("--bucket", "-b", envvar="GSMT_BUCKET", help="Bucket name")
@click.option("--region", "-r", envvar="GSMT_REGION",
              help="Bucket region (default: us-east-1)")
@click.option("--access-key-id", "-k", envvar="GSMT_ACCESS_KEY_ID",
              help="AWS access key id (default: system config)")
@click.option("--secret-access-key", "-s", envvar="GSMT_SECRET_ACCESS_KEY",
              help="AWS secret access key (default: system config)")
@click.option("--concurrency", "-c", type=click.INT, envvar="GSMT_CONCURRENCY",
              help="Number of uploads at the same time (default: 10)")
@click.option("--fail-fast", is_flag=True,
              help="Stop starting new uploads after the first failure")
@click.option("--gridfs-bucket", envvar="GSMT_GRIDFS_BUCKET",
              help="GridFS bucket name (default: fs)")
@click.option("--config", "config_file", type=click.Path(dir_okay=False),
              help="JSON file with default values for these options")
@click.option("--log-dir", type=click.Path(file_okay=False),
              help="Directory for run logs (default: ~/.config/gsmt/logs)")
@click.option("--no-log", is_flag=True, help="Do not record this run in the logs")
@click.pass_context
def migrate(ctx, config_file: Optional[str], log_dir: Optional[str], no_log: bool, **options):
    """Copy every GridFS file into an S3 bucket

    Files are uploaded as publicly readable objects under FOLDER/filename,
    with a content type guessed from the file extension.

    Examples:
    \b
    - Copy all files of a database:
      gsmt migrate -m mongodb://localhost/app -f app1 -b my-bucket

    - Use 4 uploads at a time and stop on the first failure:
      gsmt migrate -m mongodb://localhost/app -f app1 -b my-bucket -c 4 --fail-fast
    """
    connection = None
    exit_code = 0
    cancel_event = threading.Event()

    def cancel(signum, frame):
        console.print("\n[yellow]Cancelling: waiting for running uploads to finish...[/yellow]")
        cancel_event.set()

    try:
        # Only explicitly given options override the config file
        given = {
            name: value for name, value in options.items()
            if ctx.get_parameter_source(name) != ParameterSource.DEFAULT
        }
        config = build_config(config_file, given)
        print_options(config)

        console.print("Opening connection to MongoDB")
        connection = SourceConnection(config.mongo_uri, config.db_name).open()

        writer = ObjectWriter(
            make_s3_client(config.region, config.access_key_id, config.secret_access_key),
            config.bucket,
        )
        pool = TransferPool(
            ObjectReader(connection, config.gridfs_bucket),
            writer,
            folder=config.folder,
            concurrency=config.concurrency,
            policy=FailurePolicy.FAIL_FAST if config.fail_fast else FailurePolicy.BEST_EFFORT,
            cancel_event=cancel_event,
            console=console,
        )
        manager = TransferManager(
            SourceLister(connection, config.gridfs_bucket),
            pool,
            logger=None if no_log else TransferLogger(log_dir),
            source=redact_uri(config.mongo_uri),
            destination=writer.object_url(config.folder),
            console=console,
        )
        # Ctrl-C stops scheduling only once uploads are running
        in_main_thread = threading.current_thread() is threading.main_thread()
        previous_handler = signal.signal(signal.SIGINT, cancel) if in_main_thread else None
        try:
            result = manager.migrate()
        finally:
            if in_main_thread:
                signal.signal(signal.SIGINT, previous_handler)

        if cancel_event.is_set():
            console.print("[yellow]Migration cancelled[/yellow]")
            exit_code = 1
        elif result.failed:
            exit_code = 1
    except Exception as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        click.echo(ctx.get_help(), err=True)
        exit_code = 1
    finally:
        if connection is not None:
            console.print("Closing connections")
            try:
                connection.close()
            except Exception as e:
                err_console.print(f"[red]Error: {escape(str(e))}[/red]")
                exit_code = 1

    if exit_code:
        sys.exit(exit_code)


@cli.command()
@click.option(
    "--date",
    type=str,
    help="Date to show logs for (YYYY-MM-DD, default: most recent)"
)
@click.option(
    "--show-files",
    is_flag=True,
    help="Show detailed file lists in the log"
)
@click.option("--log-dir", type=click.Path(file_okay=False),
              help="Directory for run logs (default: ~/.config/gsmt/logs)")
def logs(date: str = None, show_files: bool = False, log_dir: str = None):
    """View migration run logs

    Examples:
    \b
    - View the most recent logs:
      gsmt logs

    - View logs for specific date:
      gsmt logs --date 2025-03-22

    - View logs with file details:
      gsmt logs --show-files
    """
    logger = TransferLogger(log_dir)

    if date is None:
        dates = logger.get_log_dates()
        if not dates:
            console.print("[yellow]No transfer logs found[/yellow]")
            return
        date = dates[-1]

    entries = logger.get_entries(date)
    if not entries:
        console.print(f"[yellow]No transfer logs found for {date}[/yellow]")
        return

    table = Table(title=f"Transfer Logs for {date}")
    table.add_column("Time", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Destination", style="blue")
    table.add_column("Status", style="yellow")
    table.add_column("Size", style="magenta")
    table.add_column("Duration", style="cyan")
    table.add_column("Policy")

    for entry in entries:
        time = datetime.fromisoformat(entry.timestamp).strftime("%H:%M:%S")

        total_files = (
            len(entry.successful_files) + len(entry.failed_files) + len(entry.skipped_files)
        )
        if total_files == 0:
            status = "No files"
        else:
            success_rate = len(entry.successful_files) / total_files * 100
            status = f"{len(entry.successful_files)}/{total_files} ({success_rate:.1f}%)"

        table.add_row(
            time,
            escape(entry.source),
            escape(entry.destination),
            status,
            format_size(entry.total_size),
            f"{entry.duration:.1f}s",
            entry.policy,
        )

        if show_files:
            if entry.successful_files:
                console.print("\n[green]Successfully copied:[/green]")
                for file in entry.successful_files:
                    console.print(f"  ✓ {escape(file)}")

            if entry.failed_files:
                console.print("\n[red]Failed to copy:[/red]")
                for file in entry.failed_files:
                    console.print(f"  ✗ {escape(file)}")

            if entry.skipped_files:
                console.print("\n[yellow]Never started:[/yellow]")
                for file in entry.skipped_files:
                    console.print(f"  - {escape(file)}")

            console.print()

    console.print(table)


if __name__ == "__main__":
    cli()
