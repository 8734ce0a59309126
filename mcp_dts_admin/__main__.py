"""
Run the task hub MCP server.

Usage:
    python -m mcp_dts_admin                      # SSE on 0.0.0.0:3000
    DTS_MCP_TRANSPORT=stdio python -m mcp_dts_admin

See mcp_dts_admin.config for the environment variables.
"""

import logging
import sys

from .config import get_settings
from .server import DurableTaskAdminServer


def main():
    settings = get_settings()
    # stderr keeps stdout free for the stdio transport
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    DurableTaskAdminServer(settings=settings).run()


if __name__ == "__main__":
    main()
