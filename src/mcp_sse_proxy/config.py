"""Proxy configuration.

Resolution order for the SSE URL: explicit argument, then the
``PLAYWRIGHT_SSE_URL`` environment variable, then ``DEFAULT_SSE_URL``.

Environment variables:
- PLAYWRIGHT_SSE_URL: SSE endpoint URL
- MCP_PROXY_TIMEOUT: Connect/write timeout in seconds (default: none)
- MCP_PROXY_LOG_LEVEL: Diagnostic log level (default: INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

DEFAULT_SSE_URL = "http://localhost:3080/sse"

ENV_SSE_URL = "PLAYWRIGHT_SSE_URL"
ENV_TIMEOUT = "MCP_PROXY_TIMEOUT"
ENV_LOG_LEVEL = "MCP_PROXY_LOG_LEVEL"


def validate_sse_url(url: str) -> httpx.URL:
    """Parse and check an SSE URL.

    Raises:
        ValueError: If the URL is not an absolute http(s) URL
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValueError(f"Invalid SSE URL {url!r}: {e}") from e

    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"SSE URL must use http or https, got {url!r}")
    if not parsed.host:
        raise ValueError(f"SSE URL has no host: {url!r}")
    return parsed


@dataclass
class ProxyConfig:
    """Proxy configuration."""

    sse_url: str = DEFAULT_SSE_URL

    # None disables timeouts entirely; the SSE read never times out
    timeout: float | None = None

    # Shut down when the remote stream ends; otherwise keep answering
    # local requests with "no active session" errors until stdin closes
    exit_on_stream_end: bool = True

    # POST to the URL advertised by the endpoint event instead of the SSE path
    use_advertised_endpoint: bool = False

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate_sse_url(self.sse_url)
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")

    @property
    def url(self) -> httpx.URL:
        return httpx.URL(self.sse_url)

    def http_timeout(self) -> httpx.Timeout:
        """Timeout for the HTTP client. Reads on the event stream never time out."""
        return httpx.Timeout(self.timeout, read=None)

    @classmethod
    def from_env(cls, url: str | None = None, **overrides: object) -> ProxyConfig:
        """Build a config from an optional URL and the environment.

        Raises:
            ValueError: If the URL or a variable holds an invalid value
        """
        values: dict[str, object] = {
            "sse_url": url or os.environ.get(ENV_SSE_URL) or DEFAULT_SSE_URL,
            "timeout": _env_float(ENV_TIMEOUT),
            "log_level": os.environ.get(ENV_LOG_LEVEL, "INFO").upper(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
