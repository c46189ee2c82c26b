"""Allow ``python -m mcp_sse_proxy``."""

from .cli import main

if __name__ == "__main__":
    main()
