"""CLI interface for card attachment uploads."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from ..core.api import CardUploadAPI
from ..core.client import AttachmentsClient
from ..core.exceptions import UploadCancelledError, UploadStateError
from ..core.ledger import UploadLedger
from ..core.models import DEFAULT_LEDGER_PATH, UploaderConfig, UploadProgress

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "uploading": "cyan",
    "paused": "yellow",
    "completed": "green",
    "failed": "red",
}


def format_size(size: int) -> str:
    """Format a byte count for display."""
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def build_config(ctx: click.Context) -> UploaderConfig:
    """Build the upload config from global options and environment."""
    return UploaderConfig.from_env(
        api_url=ctx.obj["api_url"],
        api_token=ctx.obj["token"],
        ledger_path=ctx.obj["ledger"],
    )


async def run_resumable(
    config: UploaderConfig,
    local_path=None,
    card_id=None,
    upload_id=None,
    chunk_size=None,
):
    """Start or resume an upload and follow it with a progress bar.

    Interrupting with Ctrl+C pauses the upload so it can be resumed later.
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Uploading...", total=None)

        def on_progress(update: UploadProgress) -> None:
            progress.update(
                task,
                description=f"{update.file_name} ({update.status})",
                total=update.file_size,
                completed=update.uploaded_bytes,
            )

        async with CardUploadAPI(config, progress_callback=on_progress) as api:
            if upload_id:
                await api.resume(upload_id, local_path)
            else:
                upload_id = await api.start_upload(local_path, card_id, chunk_size=chunk_size)

            try:
                attachment = await api.wait(upload_id)
            except asyncio.CancelledError:
                try:
                    await api.pause(upload_id)
                except UploadStateError:
                    pass
                console.print(
                    f"\n[yellow]Upload paused.[/yellow] Resume with: "
                    f"[bold]card-uploads resume {upload_id}[/bold]"
                )
                raise

    return upload_id, attachment


@click.group()
@click.option(
    "--api-url",
    envvar="CARD_UPLOADS_API_URL",
    help="Board API base URL (or set CARD_UPLOADS_API_URL env var)",
)
@click.option(
    "--token",
    envvar="CARD_UPLOADS_TOKEN",
    help="Board API bearer token (or set CARD_UPLOADS_TOKEN env var)",
)
@click.option(
    "--ledger",
    envvar="CARD_UPLOADS_LEDGER",
    default=DEFAULT_LEDGER_PATH,
    show_default=True,
    help="Upload ledger file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, api_url, token, ledger, verbose):
    """Card Uploads CLI - Upload files to cards with pause and resume."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url
    ctx.obj["token"] = token
    ctx.obj["ledger"] = ledger


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("card_id", type=int)
@click.option(
    "--resumable/--simple",
    default=None,
    help="Force a resumable or single-request upload (default: by file size)",
)
@click.option(
    "--chunk-size",
    type=int,
    default=None,
    help="Chunk size in bytes for resumable uploads (default: 1 MiB)",
)
@click.pass_context
def upload(ctx, local_path, card_id, resumable, chunk_size):
    """Upload a file to a card."""
    try:
        config = build_config(ctx)
        if resumable is None:
            resumable = Path(local_path).stat().st_size > config.resumable_threshold

        console.print(f"Uploading [cyan]{local_path}[/cyan] to card [green]{card_id}[/green]")
        if not resumable:
            client = AttachmentsClient(config.api_url, config.api_token, config.timeout)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("Uploading file...", total=None)
                attachment = client.upload_file(card_id, local_path)
                progress.update(task, completed=1)
            console.print(f"[green]✓[/green] Uploaded as attachment {attachment.id}")
            return

        upload_id, attachment = asyncio.run(
            run_resumable(config, local_path=local_path, card_id=card_id, chunk_size=chunk_size)
        )
        suffix = f" as attachment {attachment.id}" if attachment else ""
        console.print(f"[green]✓[/green] Upload {upload_id} completed{suffix}")

    except KeyboardInterrupt:
        sys.exit(130)
    except UploadCancelledError:
        console.print("[yellow]Upload was paused or cancelled.[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("upload_id")
@click.argument("local_path", required=False, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def resume(ctx, upload_id, local_path):
    """Resume a paused or failed upload.

    LOCAL_PATH re-supplies the file when it moved since the upload started.
    """
    try:
        config = build_config(ctx)
        upload_id, attachment = asyncio.run(
            run_resumable(config, local_path=local_path, upload_id=upload_id)
        )
        suffix = f" as attachment {attachment.id}" if attachment else ""
        console.print(f"[green]✓[/green] Upload {upload_id} completed{suffix}")

    except KeyboardInterrupt:
        sys.exit(130)
    except UploadCancelledError:
        console.print("[yellow]Upload was paused or cancelled.[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("upload_id")
@click.option("--local-only", is_flag=True, help="Do not notify the board API")
@click.pass_context
def cancel(ctx, upload_id, local_only):
    """Cancel an upload and remove it from the ledger."""

    async def _cancel() -> bool:
        async with CardUploadAPI(build_config(ctx)) as api:
            if api.get_progress(upload_id) is None:
                return False
            await api.cancel(upload_id, notify_remote=not local_only)
            return True

    try:
        if asyncio.run(_cancel()):
            console.print(f"[green]✓[/green] Cancelled upload {upload_id}")
        else:
            console.print(f"[yellow]No upload {upload_id} in the ledger.[/yellow]")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def list_uploads(ctx):
    """List uploads recorded in the ledger."""
    try:
        with UploadLedger(ctx.obj["ledger"]) as ledger:
            records = ledger.get_all()

        if not records:
            console.print("[yellow]No uploads in the ledger.[/yellow]")
            return

        table = Table(title="Uploads")
        table.add_column("ID", style="cyan")
        table.add_column("File", style="green")
        table.add_column("Card", justify="right")
        table.add_column("Progress", justify="right")
        table.add_column("Status")
        table.add_column("Error", style="red")

        for record in records:
            progress = UploadProgress.from_record(record)
            style = STATUS_STYLES.get(progress.status, "")
            table.add_row(
                record.upload_id,
                record.file_name,
                str(record.card_id),
                f"{format_size(progress.uploaded_bytes)} / {format_size(record.file_size)} "
                f"({progress.progress_percent:.0f}%)",
                f"[{style}]{progress.status}[/{style}]" if style else progress.status,
                record.error or "",
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("card_id", type=int)
@click.pass_context
def attachments(ctx, card_id):
    """List the attachments of a card."""
    try:
        config = build_config(ctx)
        client = AttachmentsClient(config.api_url, config.api_token, config.timeout)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Fetching attachments...", total=None)
            items = client.list_attachments(card_id)
            progress.update(task, completed=1)

        if not items:
            console.print(f"[yellow]Card {card_id} has no attachments.[/yellow]")
            return

        table = Table(title=f"Attachments of card {card_id}")
        table.add_column("ID", style="cyan")
        table.add_column("File", style="green")
        table.add_column("Size", justify="right")
        table.add_column("Uploaded by")
        table.add_column("Created", style="dim")

        for item in items:
            table.add_row(
                str(item.id),
                item.file_name,
                format_size(item.file_size),
                item.uploader_name or "",
                item.created_at.strftime("%Y-%m-%d %H:%M") if item.created_at else "",
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()
