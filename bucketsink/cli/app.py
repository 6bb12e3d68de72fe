"""Typer CLI that streams a file or stdin into a bucket object."""

from __future__ import annotations

import logging
import mimetypes
import os
import sys
from typing import BinaryIO

import requests
import typer
from tqdm import tqdm

from bucketsink import __version__
from bucketsink.config.config import ConfigManager
from bucketsink.config.helpers import parse_bytes
from bucketsink.exceptions import UploadStreamError
from bucketsink.streaming.destination import ObjectDestination
from bucketsink.streaming.upload_stream import ResumableUploadStream

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 1024 * 1024

app = typer.Typer(add_completion=False, help="Stream data into bucket objects.")


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the bucketsink version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI option for --version."""
    return None


def _guess_content_type(source: str, destination_uri: str) -> str | None:
    for candidate in (destination_uri, source):
        content_type, _ = mimetypes.guess_type(candidate)
        if content_type:
            return content_type
    return None


def _copy_to_stream(
    reader: BinaryIO, stream: ResumableUploadStream, total: int | None
) -> int:
    """Copy ``reader`` into ``stream`` block by block, reporting progress."""
    with tqdm(
        total=total,
        unit="B",
        unit_scale=True,
        unit_divisor=1024,
        desc=stream.session.destination.name,
        disable=not sys.stderr.isatty(),
    ) as pbar:
        while True:
            block = reader.read(READ_BLOCK_SIZE)
            if not block:
                break
            stream.write(block)
            pbar.update(len(block))
    return stream.position


@app.command("upload")
def upload(
    source: str = typer.Argument(..., help="File to upload, or '-' for stdin."),
    destination_uri: str = typer.Argument(
        ..., help="Destination object, e.g. gs://bucket/path/to/object."
    ),
    chunk_size: str | None = typer.Option(
        None,
        "--chunk-size",
        "-s",
        help="Chunk size, e.g. 8MiB. Rounded up to a multiple of 256 KiB.",
    ),
    content_type: str | None = typer.Option(
        None,
        "--content-type",
        "-t",
        help="Content type of the object. Guessed from the names when omitted.",
    ),
    token: str | None = typer.Option(
        None,
        "--token",
        envvar="BUCKETSINK_ACCESS_TOKEN",
        help="Bearer token used to initiate the upload session.",
    ),
    api_url: str | None = typer.Option(
        None,
        "--api-url",
        help="Backend API issuing upload URLs instead of calling GCS directly.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log every chunk request."
    ),
) -> None:
    """Upload SOURCE to DESTINATION_URI as a resumable upload."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        parsed_chunk_size = parse_bytes(chunk_size) if chunk_size else None
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--chunk-size") from exc

    config = ConfigManager().resolve_effective_config({
        "chunk_size": parsed_chunk_size,
        "content_type": content_type or _guess_content_type(source, destination_uri),
        "access_token": token,
        "api_url": api_url,
    })

    try:
        destination = ObjectDestination.from_uri(
            destination_uri, content_type=config.content_type
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="DESTINATION_URI") from exc

    try:
        if source == "-":
            reader: BinaryIO = sys.stdin.buffer
            total = None
        else:
            reader = open(source, "rb")
            total = os.fstat(reader.fileno()).st_size
    except OSError as exc:
        logger.error("Cannot read %s: %s", source, exc)
        raise typer.Exit(code=1) from exc

    try:
        with ResumableUploadStream(destination, config=config) as stream:
            if total is not None:
                stream.declare_length(total)
            written = _copy_to_stream(reader, stream, total)
    except (UploadStreamError, requests.RequestException) as exc:
        logger.error("Upload to %s failed: %s", destination.uri, exc)
        raise typer.Exit(code=1) from exc
    finally:
        if reader is not sys.stdin.buffer:
            reader.close()

    typer.echo(f"Uploaded {written} bytes to {destination.uri}")


def main() -> None:
    """CLI entrypoint for the bucketsink command."""
    app()


if __name__ == "__main__":
    main()
