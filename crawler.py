#!/usr/bin/env python3
"""
Downloader for author catalogs on fantasy-worlds.net.

The script fetches an author page, groups the listed books into series and
then downloads every book archive, unpacks it and renames the book after its
title. Books land in ``<output>/<series>/<title>.<ext>``.

Prerequisites:
  - Python 3 with requests and beautifulsoup4 installed.

Usage:
  python crawler.py author 1234 --output ./books
  python crawler.py author 1234 --dry-run
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import requests
from bs4 import BeautifulSoup

from acquire import (
    DEFAULT_TIMEOUT,
    DEFAULT_WORKERS,
    BookResult,
    DownloadReport,
    author_url,
    download_catalog,
)
from catalog import (
    CrawlerError,
    Series,
    count_books,
    extract_author_name,
    parse_author_page,
    safe_filename,
)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/125.0.0.0 Safari/537.36"
)


def build_session(user_agent: Optional[str] = None) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent or DEFAULT_USER_AGENT})
    return session


def fetch_page(
    url: str, session: requests.Session, timeout: float = DEFAULT_TIMEOUT
) -> BeautifulSoup:
    resp = session.get(url, timeout=timeout)
    resp.raise_for_status()
    return BeautifulSoup(resp.text, "html.parser")


def load_author(
    session: requests.Session, author_id: int, timeout: float = DEFAULT_TIMEOUT
) -> Tuple[str, List[Series]]:
    """Fetch the author page and return the author name and their series.

    Network errors and an unexpected page layout are fatal for the run and
    propagate to the caller.
    """
    page = fetch_page(author_url(author_id), session, timeout=timeout)
    author_name = extract_author_name(page, author_id)
    print(f"Located author name as '{author_name}'")
    return author_name, parse_author_page(page)


def print_catalog(series_list: Sequence[Series]) -> None:
    for series in series_list:
        print(f"{series.name} ({len(series.books)})")
        for book in series.books:
            print(f"  {book.id:>8}  {book.name}")


def print_summary(report: DownloadReport) -> None:
    counts = report.counts()
    parts = ", ".join(f"{status}: {count}" for status, count in sorted(counts.items()))
    print(f"Finished {len(report.results)} books ({parts or 'nothing to do'})")
    for failure in report.failures:
        print(
            f"[warn] {failure.series} / {failure.book.name}: "
            f"{failure.status} {failure.message}".rstrip(),
            file=sys.stderr,
        )


def _series_done(series: Series, results: List[BookResult]) -> None:
    done = sum(1 for result in results if result.ok)
    print(f"Series '{series.name}': {done}/{len(results)} books saved")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download an author's books from fantasy-worlds.net."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    author = subparsers.add_parser("author", help="Download every book of an author.")
    author.add_argument("author_id", type=int, help="Numeric author id from the site URL.")
    author.add_argument(
        "--output",
        default=None,
        help="Directory to store the books (default: ./<author name>).",
    )
    author.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Books downloaded in parallel within a series (default: {DEFAULT_WORKERS}).",
    )
    author.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"HTTP timeout in seconds (default: {DEFAULT_TIMEOUT:g}).",
    )
    author.add_argument(
        "--user-agent",
        help="Override the default User-Agent string for HTTP requests.",
    )
    author.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list the series and books found, download nothing.",
    )
    return parser.parse_args(argv)


def run_author(args: argparse.Namespace, session: requests.Session) -> int:
    author_name, series_list = load_author(session, args.author_id, timeout=args.timeout)
    print(
        f"Found '{len(series_list)}' series with '{count_books(series_list)}' total books"
    )

    if args.dry_run:
        print_catalog(series_list)
        return 0

    output_dir = Path(args.output) if args.output else Path(safe_filename(author_name))
    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"Saving files to {output_dir}")

    report = download_catalog(
        session,
        series_list,
        output_dir,
        workers=args.workers,
        timeout=args.timeout,
        on_series_done=_series_done,
    )
    print_summary(report)
    return 1 if report.failures else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    session = build_session(args.user_agent)
    try:
        return run_author(args, session)
    except requests.RequestException as exc:
        print(f"[error] Failed to fetch author {args.author_id}: {exc}", file=sys.stderr)
    except CrawlerError as exc:
        print(f"[error] Author {args.author_id}: {exc}", file=sys.stderr)
    finally:
        session.close()
    return 1


if __name__ == "__main__":
    sys.exit(main())
