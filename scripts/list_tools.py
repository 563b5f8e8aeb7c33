"""
List the tools of a running HTTP server, with their input parameters.

Usage: python scripts/list_tools.py [mcp-url]
"""
from __future__ import annotations

import asyncio
import os
import sys
from typing import Dict

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client


DEFAULT_MCP_URL = "http://127.0.0.1:9000/mcp"


def auth_headers() -> Dict[str, str]:
    token = os.getenv("MCP_SERVER_TOKEN", "").strip()
    return {"Authorization": f"Bearer {token}"} if token else {}


async def main() -> None:
    mcp_url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_MCP_URL
    async with streamablehttp_client(mcp_url, headers=auth_headers()) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            tools_result = await session.list_tools()
            print(f"{len(tools_result.tools)} tools at {mcp_url}:")
            for tool in tools_result.tools:
                schema = tool.inputSchema or {}
                required = set(schema.get("required", []))
                params = ", ".join(
                    name if name in required else f"[{name}]"
                    for name in schema.get("properties", {})
                )
                print(f"- {tool.name}({params})")
                print(f"    {tool.description}")


if __name__ == "__main__":
    asyncio.run(main())
