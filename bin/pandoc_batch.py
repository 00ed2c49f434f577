#!/usr/bin/env python3
"""
PageBench pandoc batch converter

Converts every .html file in a directory to Markdown by running one
`pandoc --from html --to markdown` process per file, at most 50 at a time.
Used as the document-conversion command under the benchmark timer.

Usage:
    python pandoc_batch.py bench/bench-pages --output bench/bench-out/pandoc
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from task_pool import run_bounded
from tool_runner import ToolInvocationError, run_tool_async


POOL_SIZE = 50


def list_html_files(html_dir: Path) -> list[Path]:
    """All *.html files directly inside `html_dir`, sorted by name."""
    return sorted(p for p in html_dir.iterdir() if p.is_file() and p.suffix == ".html")


async def convert(file_path: Path, output_dir: Path, pandoc: str = "pandoc") -> None:
    out_file = output_dir / (file_path.stem + ".md")
    await run_tool_async([
        pandoc, str(file_path),
        "--from", "html",
        "--to", "markdown",
        "--output", str(out_file),
    ])


async def convert_dir(
    html_dir: Path,
    output_dir: Path,
    pool_size: int = POOL_SIZE,
    pandoc: str = "pandoc",
) -> int:
    """Convert all pages in `html_dir`; returns the number of files converted."""
    output_dir.mkdir(parents=True, exist_ok=True)
    files = list_html_files(html_dir)
    tasks = [functools.partial(convert, f, output_dir, pandoc) for f in files]
    await run_bounded(tasks, pool_size)
    return len(files)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Convert a directory of HTML files with pandoc")
    p.add_argument("html_dir", type=Path)
    p.add_argument("--output", type=Path, default=Path("bench/bench-out/pandoc"))
    p.add_argument("--pool_size", type=int, default=POOL_SIZE)
    return p.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    if not args.html_dir.is_dir():
        raise SystemExit(f"Html dir does not exist: {args.html_dir}")

    start = time.monotonic()
    n = await convert_dir(args.html_dir, args.output, args.pool_size)
    print(f"Converted {n} files in {(time.monotonic() - start) * 1000:.0f}ms.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except ToolInvocationError as e:
        print(f"[Error] {e}")
        sys.exit(1)
