# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Development server module for testing with 'mcp dev' and 'fastmcp run'.

Exposes the FastMCP server instance as a module-level global, serving the
vault in the current working directory.

Usage:
    # From the vault directory
    mcp dev /path/to/src/title_linker/dev_server.py:mcp

Note:
    For production use, run the server via: python -m title_linker --vault <dir>
"""

from title_linker.mcp_server import TitleLinkerMCPServer

_server = TitleLinkerMCPServer()
mcp = _server.mcp
