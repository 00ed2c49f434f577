#!/usr/bin/env python3
"""
PageBench markdownify batch converter

Converts every .html file in a directory to Markdown in-process with the
markdownify library. Used as the library-based command under the benchmark
timer.

Usage:
    python markdownify_batch.py bench/bench-pages --output bench/bench-out/markdownify
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Optional, Sequence

import markdownify


def list_html_files(html_dir: Path) -> list[Path]:
    return sorted(p for p in html_dir.iterdir() if p.is_file() and p.suffix == ".html")


def convert(file_path: Path, output_dir: Path) -> Path:
    """Convert one page; returns the written .md path."""
    html = file_path.read_text(encoding="utf-8", errors="replace")
    md = markdownify.markdownify(html, heading_style="ATX")
    out_file = output_dir / (file_path.stem + ".md")
    out_file.write_text(md, encoding="utf-8")
    return out_file


def convert_dir(html_dir: Path, output_dir: Path) -> int:
    output_dir.mkdir(parents=True, exist_ok=True)
    files = list_html_files(html_dir)
    for f in files:
        convert(f, output_dir)
    return len(files)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Convert a directory of HTML files with markdownify")
    p.add_argument("html_dir", type=Path)
    p.add_argument("--output", type=Path, default=Path("bench/bench-out/markdownify"))
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    if not args.html_dir.is_dir():
        raise SystemExit(f"Html dir does not exist: {args.html_dir}")

    start = time.monotonic()
    n = convert_dir(args.html_dir, args.output)
    print(f"Converted {n} files in {(time.monotonic() - start) * 1000:.0f}ms.")


if __name__ == "__main__":
    main()
