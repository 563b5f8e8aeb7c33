"""
Call one tool on a running HTTP server and pretty-print its JSON response.

Usage: python scripts/call_tool.py <tool_name> '<json-args>'

When the arguments carry no ``apikey``, ARCGIS_API_KEY is used.
MCP_URL overrides the endpoint, MCP_SERVER_TOKEN is sent as bearer token.
"""
from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Any, Dict

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from list_tools import DEFAULT_MCP_URL, auth_headers


async def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: python scripts/call_tool.py <tool_name> '<json-args>'")
        raise SystemExit(1)

    tool_name = sys.argv[1]
    try:
        params: Dict[str, Any] = json.loads(sys.argv[2])
    except json.JSONDecodeError as exc:
        print(f"Failed to parse JSON arguments: {exc}")
        raise SystemExit(1)

    api_key = os.getenv("ARCGIS_API_KEY", "").strip()
    if api_key and "apikey" not in params:
        params["apikey"] = api_key

    mcp_url = os.getenv("MCP_URL", DEFAULT_MCP_URL)
    async with streamablehttp_client(mcp_url, headers=auth_headers()) as (read_stream, write_stream, _):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            result = await session.call_tool(tool_name, params)
            for block in result.content:
                text = getattr(block, "text", None)
                if text is None:
                    print(block)
                    continue
                try:
                    print(json.dumps(json.loads(text), indent=2, ensure_ascii=False))
                except json.JSONDecodeError:
                    print(text)
            if result.isError:
                raise SystemExit(1)


if __name__ == "__main__":
    asyncio.run(main())
