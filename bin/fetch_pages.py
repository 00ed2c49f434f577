#!/usr/bin/env python3
"""
PageBench Page Fetcher

Harvests a bounded set of web pages to use as HTML-to-Markdown benchmark input.

Pipeline:
    INIT → DISCOVER → DISPATCH (batch 1 … batch N) → DONE

- INIT:      Output folder is deleted (if present) and recreated empty
- DISCOVER:  The seed page is fetched once and scanned for up to COUNT links
- DISPATCH:  Links are split into batches of BATCH_SIZE; each batch runs
             through a bounded worker pool (ceiling = BATCH_SIZE) and must
             settle before the next batch is dispatched
- PERSIST:   Inside each task the page title is sanitized, disambiguated
             against the per-run collision table and written as
             <output>/<title>[ (N)].html

Batches bound the number of live browser instances; each one is heavy.

Author: PageBench Team
Version: 1.0.0
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import functools
import json
import shutil
import sys
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

import aiohttp
import polars as pl
from tqdm import tqdm

from single_fetch import (
    DEFAULT_TIMEOUT_MS,
    FetchedPage,
    FetchError,
    PersistError,
    SharedBrowser,
    extract_links,
    fetch_page,
    fetch_page_http,
    sanitize_title,
    save_page,
)
from task_pool import run_bounded


FetchFn = Callable[[str], Awaitable[FetchedPage]]

SOURCE_PAGE_URL = "https://en.wikipedia.org/wiki/Rust_(programming_language)"
FETCHERS = ("browser", "shared-browser", "http")
USER_AGENT = "PageBench/1.0"


class DiscoveryError(Exception):
    """The seed page could not be fetched; nothing to dispatch."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def _monotonic() -> float:
    """Monotonic time for duration measurements."""
    return time.monotonic()


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class Config:
    """Main application configuration."""
    output_folder: str

    seed_url: str = SOURCE_PAGE_URL
    count: int = 200

    batch_size: int = 10
    timeout_sec: float = DEFAULT_TIMEOUT_MS / 1000

    # browser | shared-browser | http
    fetcher: str = "browser"

    # Keep going past failed fetches instead of failing the batch
    tolerate_failures: bool = False

    # Output options
    create_manifest: bool = True
    create_overview: bool = True
    show_progress: bool = True


def parse_args(argv: Optional[Sequence[str]] = None) -> Config:
    """Parse command line arguments or JSON config file."""
    p = argparse.ArgumentParser(
        description="PageBench page fetcher: harvest benchmark pages from a seed page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python fetch_pages.py --config pages.json
  python fetch_pages.py --output bench/bench-pages --count 200 --batch_size 10
"""
    )

    p.add_argument("--config", type=str, help="Path to JSON config file")

    # Input/Output
    p.add_argument("--seed", dest="seed_url", type=str, default=SOURCE_PAGE_URL)
    p.add_argument("--output", dest="output_folder", type=str, help="Output folder")
    p.add_argument("--count", type=int, default=200, help="Number of pages to fetch")

    # Fetch settings
    p.add_argument("--batch_size", type=int, default=10)
    p.add_argument("--timeout", dest="timeout_sec", type=float, default=DEFAULT_TIMEOUT_MS / 1000)
    p.add_argument("--fetcher", type=str, default="browser", choices=FETCHERS)
    p.add_argument("--tolerate_failures", action="store_true")

    # Output options
    p.add_argument("--no_manifest", action="store_true")
    p.add_argument("--no_overview", action="store_true")
    p.add_argument("--no_progress", action="store_true")

    args = p.parse_args(argv)

    # Load from JSON config if provided
    if args.config:
        cfg_path = Path(args.config)
        with cfg_path.open("r") as f:
            data = json.load(f)

        if not data.get("output"):
            p.error("config file must set 'output'")

        cfg = Config(
            output_folder=data["output"],
            seed_url=data.get("seed", SOURCE_PAGE_URL),
            count=int(data.get("count", 200)),
            batch_size=int(data.get("batch_size", 10)),
            timeout_sec=float(data.get("timeout", DEFAULT_TIMEOUT_MS / 1000)),
            fetcher=data.get("fetcher", "browser"),
            tolerate_failures=bool(data.get("tolerate_failures", False)),
            create_manifest=bool(data.get("create_manifest", True)),
            create_overview=bool(data.get("create_overview", True)),
            show_progress=bool(data.get("show_progress", True)),
        )
    else:
        if not args.output_folder:
            p.error("--output is required unless --config is provided")

        cfg = Config(
            output_folder=args.output_folder,
            seed_url=args.seed_url,
            count=args.count,
            batch_size=args.batch_size,
            timeout_sec=args.timeout_sec,
            fetcher=args.fetcher,
            tolerate_failures=args.tolerate_failures,
            create_manifest=not args.no_manifest,
            create_overview=not args.no_overview,
            show_progress=not args.no_progress,
        )

    if cfg.fetcher not in FETCHERS:
        p.error(f"fetcher must be one of {', '.join(FETCHERS)}; got {cfg.fetcher!r}")
    if cfg.batch_size < 1:
        p.error("batch_size must be >= 1")
    if cfg.count < 0:
        p.error("count must be >= 0")

    return cfg


# =============================================================================
# OUTPUT FOLDER
# =============================================================================

def prepare_output_dir(output_folder: str) -> Path:
    """Delete the output folder if it exists and create it empty."""
    out_dir = Path(output_folder).resolve()
    try:
        if out_dir.exists():
            print(f"[I/O] Output folder exists; deleting: {out_dir}")
            shutil.rmtree(out_dir)
        out_dir.mkdir(parents=True)
    except OSError as e:
        raise PersistError(f"Cannot prepare output folder {out_dir}: {e}") from e
    return out_dir


# =============================================================================
# FILENAME ALLOCATION
# =============================================================================

class FilenameAllocator:
    """
    Per-run collision table.

    Maps a sanitized title to the number of times it has been used. The first
    occurrence keeps the bare name; later ones get " (1)", " (2)", … in the
    order allocate() is called, which is fetch completion order.
    """

    FALLBACK_NAME = "untitled"

    def __init__(self):
        self._counts: dict[str, int] = {}
        self._issued: set[str] = set()

    def allocate(self, name: str) -> str:
        """Reserve a unique file stem for `name`."""
        # No await between lookup and update: atomic on the event loop.
        name = name or self.FALLBACK_NAME
        count = self._counts.get(name, 0)
        candidate = f"{name} ({count})" if count > 0 else name
        # A literal title such as "Rust (1)" may already hold a suffixed name
        while candidate in self._issued:
            count += 1
            candidate = f"{name} ({count})"
        self._counts[name] = count + 1
        self._issued.add(candidate)
        return candidate

    def count(self, name: str) -> int:
        """How many times `name` has been allocated so far."""
        return self._counts.get(name or self.FALLBACK_NAME, 0)


# =============================================================================
# FETCH AND PERSIST
# =============================================================================

@dataclass
class PageOutcome:
    """Result of a single page fetch."""
    url: str
    success: bool
    title: Optional[str] = None
    file_path: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    bytes_written: int = 0


async def persist_page(
    page: FetchedPage,
    out_dir: Path,
    allocator: FilenameAllocator,
) -> tuple[str, int]:
    """Name and write one fetched page. Returns (file_path, bytes_written)."""
    filename = allocator.allocate(sanitize_title(page.title))
    file_path = out_dir / f"{filename}.html"
    size = await asyncio.to_thread(save_page, page.html.encode("utf-8"), str(file_path))
    return str(file_path), size


async def fetch_one(
    url: str,
    *,
    fetch: FetchFn,
    out_dir: Path,
    allocator: FilenameAllocator,
    tolerate_failures: bool = False,
) -> PageOutcome:
    """Fetch a page and persist it. FetchError propagates unless tolerated."""
    try:
        page = await fetch(url)
    except FetchError as e:
        if not tolerate_failures:
            raise
        tqdm.write(f"[Warning] {e}")
        return PageOutcome(url=url, success=False, error_kind=e.kind, error=str(e))

    file_path, size = await persist_page(page, out_dir, allocator)
    return PageOutcome(
        url=url,
        success=True,
        title=page.title,
        file_path=file_path,
        bytes_written=size,
    )


async def fetch_and_persist(
    *,
    seed_url: str,
    output_folder: str,
    count: int,
    batch_size: int,
    fetch: FetchFn,
    tolerate_failures: bool = False,
    show_progress: bool = True,
) -> list[PageOutcome]:
    """
    Discover up to `count` links on the seed page, fetch them in sequential
    batches of `batch_size` and write each as <output_folder>/<title>.html.

    Raises:
        DiscoveryError: Seed page could not be fetched
        FetchError: A page fetch failed (unless tolerate_failures); pages
            already written by the failing batch are kept
        PersistError: Output folder or a page file could not be written
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    out_dir = prepare_output_dir(output_folder)

    try:
        seed = await fetch(seed_url)
    except FetchError as e:
        raise DiscoveryError(f"Seed page fetch failed: {e}") from e

    links = extract_links(seed_url, seed.html, count)
    print(f"[Discover] Got {len(links)} links from {seed_url}")

    allocator = FilenameAllocator()
    outcomes: list[PageOutcome] = []
    pbar = tqdm(total=len(links), desc="Fetching", unit="page", disable=not show_progress)

    try:
        for start in range(0, len(links), batch_size):
            batch = links[start:start + batch_size]
            tqdm.write(f"[Batch] Fetch pages from index {start} to {start + len(batch)}")

            tasks = [
                functools.partial(
                    fetch_one,
                    url,
                    fetch=fetch,
                    out_dir=out_dir,
                    allocator=allocator,
                    tolerate_failures=tolerate_failures,
                )
                for url in batch
            ]
            outcomes.extend(await run_bounded(tasks, batch_size, progress=pbar))
    finally:
        pbar.close()

    return outcomes


@contextlib.asynccontextmanager
async def open_fetcher(cfg: Config):
    """Yield a `fetch(url)` coroutine function for the configured fetcher."""
    timeout_ms = int(cfg.timeout_sec * 1000)

    if cfg.fetcher == "browser":
        yield functools.partial(fetch_page, timeout_ms=timeout_ms)
    elif cfg.fetcher == "shared-browser":
        async with SharedBrowser(timeout_ms) as browser:
            yield browser.fetch
    elif cfg.fetcher == "http":
        async with aiohttp.ClientSession(
            headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US"},
        ) as session:
            yield functools.partial(fetch_page_http, session, timeout=cfg.timeout_sec)
    else:
        raise ValueError(f"Unknown fetcher: {cfg.fetcher}")


# =============================================================================
# MANIFEST AND OVERVIEW
# =============================================================================

def _sibling_path(output_folder: str, suffix: str) -> Path:
    out = Path(output_folder).resolve()
    return out.with_name(out.name + suffix)


def write_manifest(output_folder: str, outcomes: list[PageOutcome]) -> str:
    """Write per-page outcomes to <output>_manifest.parquet."""
    df = pl.DataFrame(
        {
            "url": [o.url for o in outcomes],
            "success": [o.success for o in outcomes],
            "title": [o.title for o in outcomes],
            "file_path": [o.file_path for o in outcomes],
            "error_kind": [o.error_kind for o in outcomes],
            "error": [o.error for o in outcomes],
            "bytes_written": [o.bytes_written for o in outcomes],
        },
        schema={
            "url": pl.Utf8,
            "success": pl.Boolean,
            "title": pl.Utf8,
            "file_path": pl.Utf8,
            "error_kind": pl.Utf8,
            "error": pl.Utf8,
            "bytes_written": pl.Int64,
        },
    )
    manifest_path = _sibling_path(output_folder, "_manifest.parquet")
    df.write_parquet(str(manifest_path))
    return str(manifest_path.resolve())


def write_overview(
    *,
    cfg: Config,
    outcomes: list[PageOutcome],
    elapsed_sec: float,
) -> str:
    """Write JSON overview report."""
    successes = [o for o in outcomes if o.success]
    failures = [o for o in outcomes if not o.success]
    err_counter = Counter((o.error_kind, o.error) for o in failures)

    total_bytes = sum(o.bytes_written for o in successes)
    mb = total_bytes / 1e6

    report = {
        "pagebench_version": "1.0.0",
        "script_inputs": {
            "seed": cfg.seed_url,
            "output_folder": cfg.output_folder,
            "count": cfg.count,
            "batch_size": cfg.batch_size,
            "timeout_sec": cfg.timeout_sec,
            "fetcher": cfg.fetcher,
            "tolerate_failures": cfg.tolerate_failures,
        },
        "summary": {
            "dispatched_pages": len(outcomes),
            "saved_pages": len(successes),
            "failed_pages": len(failures),
            "saved_mb": round(mb, 3),
            "elapsed_sec": round(elapsed_sec, 3),
        },
        "error_breakdown": [
            {"kind": kind, "error": err, "count": cnt}
            for (kind, err), cnt in err_counter.most_common()
        ],
        "timestamp_local": time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()),
    }

    overview_path = _sibling_path(cfg.output_folder, "_overview.json")
    with overview_path.open("w") as f:
        json.dump(report, f, indent=2)

    return str(overview_path.resolve())


# =============================================================================
# MAIN
# =============================================================================

async def run(cfg: Config) -> list[PageOutcome]:
    """Fetch pages for `cfg`, print a summary and write the run reports."""
    print("=" * 72)
    print("PageBench Page Fetcher")
    print("=" * 72)
    print(f"[Config] Seed: {cfg.seed_url}")
    print(f"[Config] Count={cfg.count} | Batch size={cfg.batch_size} | Fetcher={cfg.fetcher}")

    start = _monotonic()

    async with open_fetcher(cfg) as fetch:
        outcomes = await fetch_and_persist(
            seed_url=cfg.seed_url,
            output_folder=cfg.output_folder,
            count=cfg.count,
            batch_size=cfg.batch_size,
            fetch=fetch,
            tolerate_failures=cfg.tolerate_failures,
            show_progress=cfg.show_progress,
        )

    elapsed = _monotonic() - start

    successes = [o for o in outcomes if o.success]
    print("\n" + "=" * 72)
    print("FINAL SUMMARY")
    print("=" * 72)
    print(f"Pages dispatched:      {len(outcomes)}")
    print(f"Pages saved:           {len(successes)}")
    print(f"Pages failed:          {len(outcomes) - len(successes)}")
    print(f"Elapsed time:          {elapsed:.2f}s")
    print(f"Total saved:           {sum(o.bytes_written for o in successes) / 1e6:.2f} MB")

    if cfg.create_manifest:
        try:
            manifest = write_manifest(cfg.output_folder, outcomes)
            print(f"[Report] Manifest: {manifest}")
        except Exception as e:
            print(f"[Report] Manifest failed: {e}")

    if cfg.create_overview:
        try:
            overview = write_overview(cfg=cfg, outcomes=outcomes, elapsed_sec=elapsed)
            print(f"[Report] Overview: {overview}")
        except Exception as e:
            print(f"[Report] Failed: {e}")

    print("=" * 72)
    return outcomes


async def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    cfg = parse_args(argv)
    await run(cfg)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except (DiscoveryError, FetchError, PersistError) as e:
        print(f"[Error] {e}")
        sys.exit(1)
