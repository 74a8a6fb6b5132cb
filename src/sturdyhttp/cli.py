"""Command-line interface for sturdyhttp.

Example:
    >>> # From terminal:
    >>> # sturdyhttp --version
    >>> # sturdyhttp fetch https://example.com/data.json -o data.json
    >>> # sturdyhttp fetch https://hooks.example.com/x -X POST -d '{"ok":true}' --restricted
    >>> # sturdyhttp check-address 10.0.0.1
"""

import os
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer

from sturdyhttp import __version__
from sturdyhttp.client import Client
from sturdyhttp.dialer import RestrictedDialer
from sturdyhttp.errors import SturdyHTTPError
from sturdyhttp.models import DialerPolicy
from sturdyhttp.observability.logging import ENV_LOG_LEVEL, configure_logging
from sturdyhttp.options import ClientOptions

app = typer.Typer(help="Resilient HTTP requests from the command line.")


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show sturdyhttp version and exit.",
    callback=_version_callback,
    is_eager=True,
)

ALLOW_HELP = "Network (CIDR) that is always allowed. Repeatable."
BLOCK_HELP = "Network (CIDR) that is blocked unless allowed. Repeatable."
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@app.callback()
def cli(
    version: bool = VERSION_OPTION,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log attempts and retries to stderr.")
    ] = False,
) -> None:
    """sturdyhttp CLI entrypoint."""
    # stdout carries response bodies; logs go to stderr.
    if verbose:
        log_level = "INFO"
    else:
        log_level = os.environ.get(ENV_LOG_LEVEL, "WARNING").upper()
        if log_level not in LOG_LEVELS:
            raise typer.BadParameter(f"Invalid {ENV_LOG_LEVEL}: {log_level}")
    configure_logging(log_level=log_level, force=True, stream=sys.stderr)


def _parse_headers(values: list[str]) -> list[tuple[str, str]]:
    headers: list[tuple[str, str]] = []
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {value!r}")
        headers.append((name.strip(), content.strip()))
    return headers


def _build_policy(allow: list[str], block: list[str]) -> DialerPolicy:
    try:
        return DialerPolicy(allowed=allow, blocked=block)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid network: {exc}") from exc


@app.command("fetch")
def fetch(
    url: Annotated[str, typer.Argument(help="URL to request.")],
    method: Annotated[str, typer.Option("--method", "-X", help="HTTP method.")] = "GET",
    header: Annotated[
        Optional[list[str]],
        typer.Option("--header", "-H", help="Request header 'Name: value'. Repeatable."),
    ] = None,
    data: Annotated[
        Optional[str], typer.Option("--data", "-d", help="Request body as text.")
    ] = None,
    data_file: Annotated[
        Optional[Path], typer.Option("--data-file", help="Send this file as the request body.")
    ] = None,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", min=0, help="Maximum attempts (0 = unlimited)."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", min=0.001, help="Per-attempt timeout in seconds."),
    ] = None,
    restricted: Annotated[
        bool,
        typer.Option("--restricted", help="Refuse connections to internal network addresses."),
    ] = False,
    allow: Annotated[Optional[list[str]], typer.Option("--allow", help=ALLOW_HELP)] = None,
    block: Annotated[Optional[list[str]], typer.Option("--block", help=BLOCK_HELP)] = None,
    include: Annotated[
        bool, typer.Option("--include", "-i", help="Print the status line and headers.")
    ] = False,
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="Write the body to a file.")
    ] = None,
) -> None:
    """Send a request, retrying transient failures, and print the response body."""
    if data is not None and data_file is not None:
        raise typer.BadParameter("Use either --data or --data-file, not both")
    if data_file is not None and not data_file.is_file():
        raise typer.BadParameter(f"Data file not found: {data_file}")

    overrides: dict[str, object] = {}
    if max_attempts is not None:
        overrides["max_attempts"] = max_attempts
    if timeout is not None:
        overrides["timeout"] = timeout
    if restricted or allow or block:
        overrides["dialer"] = RestrictedDialer(_build_policy(allow or [], block or []))
    try:
        options = ClientOptions.from_env(**overrides)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    headers = _parse_headers(header or [])
    body_file = data_file.open("rb") if data_file is not None else None
    try:
        with Client(options) as client:
            body = body_file if body_file is not None else data
            with client.request(method, url, body, headers=headers) as response:
                if include:
                    typer.echo(
                        f"{response.http_version} {response.status_code} "
                        f"{response.reason_phrase}"
                    )
                    for name, value in response.headers.multi_items():
                        typer.echo(f"{name}: {value}")
                    typer.echo("")
                if output is not None:
                    with output.open("wb") as fp:
                        for chunk in response.iter_bytes():
                            fp.write(chunk)
                else:
                    for chunk in response.iter_bytes():
                        sys.stdout.buffer.write(chunk)
                    sys.stdout.buffer.flush()
                status_code = response.status_code
    except SturdyHTTPError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(1) from exc
    finally:
        if body_file is not None:
            body_file.close()

    if status_code >= 400:
        raise typer.Exit(2)


@app.command("check-address")
def check_address(
    address: Annotated[str, typer.Argument(help="IP address to check.")],
    allow: Annotated[Optional[list[str]], typer.Option("--allow", help=ALLOW_HELP)] = None,
    block: Annotated[Optional[list[str]], typer.Option("--block", help=BLOCK_HELP)] = None,
) -> None:
    """Report whether the restricted dialer would connect to an address."""
    dialer = RestrictedDialer(_build_policy(allow or [], block or []))
    try:
        allowed = dialer.is_allowed(address)
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid IP address: {address}") from exc
    typer.echo(f"{address}: {'allowed' if allowed else 'blocked'}")
    if not allowed:
        raise typer.Exit(1)


def main() -> None:
    """Run the sturdyhttp CLI."""
    app()


if __name__ == "__main__":
    main()
