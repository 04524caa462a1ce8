#!/usr/bin/env python3
"""
mmd2excalidraw - convert Mermaid diagrams (.mmd) into Excalidraw scenes.

Mermaid parsing and layout happen inside headless Chromium: a local asset
bridge serves the browser bundles, Playwright drives the page, and each
diagram comes back as Excalidraw elements written to a .excalidraw file.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from asset_bridge import BridgeConfig, default_bridge_config, start_bridge_server
from browser_session import BrowserSession
from conversion_errors import FileSystemError
from convert_options import parse_args
from scene_convert import plan_jobs, run_jobs


async def main_async(argv: Sequence[str], bridge_config: Optional[BridgeConfig] = None) -> List[Path]:
    parsed = parse_args(argv)
    options = parsed.options.validate()

    cwd = Path.cwd()
    input_path = (cwd / parsed.input).resolve()
    output_path = (cwd / parsed.output).resolve() if parsed.output else None
    if not input_path.exists():
        raise FileSystemError("open", input_path, FileNotFoundError(2, "No such file or directory"))

    jobs = plan_jobs(input_path, output_path, options)
    if not jobs:
        return []

    server = None
    session = BrowserSession()
    try:
        server = start_bridge_server(bridge_config or default_bridge_config())
        await session.start(server.url)
        written = await run_jobs(session, jobs)
    finally:
        try:
            await session.close()
        finally:
            if server is not None:
                server.close()

    print(f"\n✅ Converted {len(written)} file(s)")
    return written


def main(argv: Optional[Sequence[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    try:
        asyncio.run(main_async(argv))
    except Exception as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
