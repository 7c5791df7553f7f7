#!/usr/bin/env python3
"""Stable entrypoint for launching the duplication MCP server from any working directory."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Sequence


def _repo_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _bootstrap_repo_path(repo_root: Path) -> None:
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


def _smoke_check() -> int:
    from DuplicateMCP_Server import server

    async def _list_tool_names() -> list:
        tools = await server.mcp.list_tools()
        return [tool.name for tool in tools]

    try:
        tool_names = asyncio.run(_list_tool_names())
    except Exception as exc:
        print(f"SMOKE_CHECK_FAILED: {exc}", file=sys.stderr)
        return 1

    if "duplicate" not in tool_names:
        print("SMOKE_CHECK_FAILED: duplicate tool is not registered", file=sys.stderr)
        return 1

    print(f"SMOKE_CHECK_OK: {len(tool_names)} tools registered")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the Ableton duplication MCP server with stable repo-root path handling."
    )
    parser.add_argument(
        "--smoke",
        action="store_true",
        help="Validate imports and tool registration without starting the server loop.",
    )
    args = parser.parse_args(argv)

    repo_root = _repo_root()
    _bootstrap_repo_path(repo_root)
    os.chdir(repo_root)

    if args.smoke:
        return _smoke_check()

    from DuplicateMCP_Server.server import main as server_main

    server_main()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
