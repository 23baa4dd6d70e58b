#!/usr/bin/env python3
"""
Utility to inspect a saved fantasy-worlds.net author page during development.

Save the page once (e.g. ``curl https://fantasy-worlds.net/author/id1234 >
author.html``) and use this to see how every node inside the main block is
classified, or which catalog comes out of it, without hitting the site.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from catalog import (
    BookItem,
    SeriesMarker,
    classify_node,
    count_books,
    extract_author_name,
    locate_main_node,
    parse_author_page,
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Show how a saved author page is split into series and books."
    )
    parser.add_argument(
        "--html",
        default="author.html",
        help="Saved author page to inspect (default: author.html).",
    )
    parser.add_argument(
        "--nodes",
        action="store_true",
        help="List every h2/a node with its classification instead of the catalog.",
    )
    parser.add_argument(
        "--skipped",
        action="store_true",
        help="With --nodes, only show nodes that produced nothing.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit the number of nodes shown.",
    )
    return parser.parse_args(argv)


def iter_candidate_nodes(soup: BeautifulSoup) -> Iterable[Dict[str, Any]]:
    main_node = locate_main_node(soup)
    for idx, node in enumerate(main_node.find_all(["h2", "a"]), start=1):
        item = classify_node(node)
        if isinstance(item, SeriesMarker):
            kind, value = "series", item.name
        elif isinstance(item, BookItem):
            kind, value = "book", f"{item.book.id} {item.book.name}"
        else:
            kind, value = "skipped", None
        yield {
            "index": idx,
            "tag": node.name,
            "kind": kind,
            "value": value,
            "html": str(node),
        }


def show_nodes(entries: Iterable[Dict[str, Any]]) -> None:
    for entry in entries:
        label = entry["value"] if entry["value"] is not None else entry["html"][:100]
        print(f"{entry['index']:4d} <{entry['tag']}> {entry['kind']:<8} {label}")


def main() -> None:
    args = parse_args()

    html_path = Path(args.html)
    if not html_path.exists():
        raise SystemExit(f"HTML file not found: {html_path}")
    soup = BeautifulSoup(html_path.read_text(encoding="utf-8"), "html.parser")

    print(f"Author: {extract_author_name(soup, 0)}")

    if args.nodes:
        entries = list(iter_candidate_nodes(soup))
        if args.skipped:
            entries = [entry for entry in entries if entry["kind"] == "skipped"]
        if args.limit:
            entries = entries[: args.limit]
        show_nodes(entries)
        return

    series_list = parse_author_page(soup)
    print(f"{len(series_list)} series, {count_books(series_list)} books")
    print("=" * 72)
    for series in series_list:
        print(series.name)
        for book in series.books:
            print(f"  {book.id:>8}  {book.name}")


if __name__ == "__main__":
    main()
