"""mcp-sse-proxy CLI.

Usage:
    mcp-sse-proxy                                # $PLAYWRIGHT_SSE_URL or http://localhost:3080/sse
    mcp-sse-proxy http://host:3080/sse           # Explicit endpoint
    mcp-sse-proxy --log-level DEBUG URL          # Verbose diagnostics on stderr
    mcp-sse-proxy --stay-attached URL            # Keep running after the stream ends

Exit codes: 0 on clean shutdown, 1 if the initial session could not be
established.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from . import __version__
from .config import (
    DEFAULT_SSE_URL,
    ENV_LOG_LEVEL,
    ENV_SSE_URL,
    ENV_TIMEOUT,
    ProxyConfig,
    validate_sse_url,
)
from .logging_config import setup_logging
from .proxy import EXIT_OK, run_proxy

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.command()
@click.argument("url", required=False, envvar=ENV_SSE_URL)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    envvar=ENV_LOG_LEVEL,
    show_default=True,
    help="Diagnostic log level (logs go to stderr)",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    envvar=ENV_TIMEOUT,
    help="Connect/write timeout in seconds (default: none)",
)
@click.option(
    "--stay-attached",
    is_flag=True,
    help="Keep serving stdin after the SSE stream ends (requests fail with 'No active session')",
)
@click.option(
    "--use-advertised-endpoint",
    is_flag=True,
    help="POST messages to the URL from the endpoint event instead of the SSE path",
)
@click.version_option(__version__, prog_name="mcp-sse-proxy")
def main(
    url: str | None,
    log_level: str,
    timeout: float | None,
    stay_attached: bool,
    use_advertised_endpoint: bool,
) -> None:
    """Bridge newline-delimited JSON-RPC on stdio to an MCP SSE endpoint.

    URL defaults to $PLAYWRIGHT_SSE_URL, then http://localhost:3080/sse.
    """
    # click has already resolved the environment for every option
    sse_url = url or DEFAULT_SSE_URL
    try:
        validate_sse_url(sse_url)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="URL") from e

    config = ProxyConfig(
        sse_url=sse_url,
        timeout=timeout,
        exit_on_stream_end=not stay_attached,
        use_advertised_endpoint=use_advertised_endpoint,
        log_level=log_level.upper(),
    )

    setup_logging(config.log_level)

    try:
        exit_code = asyncio.run(run_proxy(config))
    except KeyboardInterrupt:
        logger.info("Received SIGINT, exiting")
        exit_code = EXIT_OK

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
