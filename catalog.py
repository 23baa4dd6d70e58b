"""
Catalog extraction for fantasy-worlds.net author pages.

An author page lists the author's books inside a single ``div.news_body``
block. Series are introduced by ``<h2><a>Series name</a></h2>`` headings and
each book is an ``<a href="/lib/id{N}/">`` link wrapping an ``<h3>`` title.
The markup is noisy, so every node is classified on its own and anything that
does not look exactly right is dropped instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag


DEFAULT_SERIES_NAME = "Без серии"

SERIES_TAG = "h2"
BOOK_TAG = "a"
TITLE_TAG = "h3"
BOOK_HREF_PREFIX = "/lib/id"

MAIN_NODE_CLASS = "news_body"
AUTHOR_NODE_CLASS = "news_title"

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class CrawlerError(RuntimeError):
    """Base class for errors raised while crawling an author."""


class AuthorPageError(CrawlerError):
    """The author page does not have the expected layout."""


@dataclass(frozen=True)
class Book:
    name: str
    id: int


@dataclass
class Series:
    name: str
    books: List[Book] = field(default_factory=list)


@dataclass(frozen=True)
class SeriesMarker:
    name: str


@dataclass(frozen=True)
class BookItem:
    book: Book


CatalogItem = Union[SeriesMarker, BookItem]


def _normalize_text(text: str) -> str:
    if not text:
        return ""
    cleaned = text.replace("\xa0", " ")
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()


def _node_text(tag: Tag) -> str:
    return _normalize_text(tag.get_text())


def _single_descendant(node: Tag, name: str) -> Optional[Tag]:
    found = node.find_all(name)
    if len(found) != 1:
        return None
    return found[0]


def parse_book_id(href: Optional[str]) -> Optional[int]:
    """Turn ``/lib/id42/`` (or an absolute URL with that path) into ``42``."""
    if not href:
        return None
    path = urlparse(href.strip()).path
    if path.startswith(BOOK_HREF_PREFIX):
        path = path[len(BOOK_HREF_PREFIX) :]
    value = path.strip("/")
    if not re.fullmatch(r"[0-9]+", value):
        return None
    return int(value)


def parse_series_name(node: Tag) -> Optional[str]:
    link = _single_descendant(node, "a")
    if link is None:
        return None
    return _node_text(link)


def parse_book(node: Tag) -> Optional[Book]:
    href = node.get("href")
    if isinstance(href, list):
        href = " ".join(href)
    book_id = parse_book_id(href)
    if book_id is None:
        return None
    title = _single_descendant(node, TITLE_TAG)
    if title is None:
        return None
    return Book(name=_node_text(title), id=book_id)


def classify_node(node: Any) -> Optional[CatalogItem]:
    """Classify one markup node as a series marker, a book, or nothing."""
    if not isinstance(node, Tag):
        return None
    if node.name == SERIES_TAG:
        name = parse_series_name(node)
        return SeriesMarker(name) if name is not None else None
    if node.name == BOOK_TAG:
        book = parse_book(node)
        return BookItem(book) if book is not None else None
    return None


def iter_catalog_items(nodes: Iterable[Any]) -> Iterator[CatalogItem]:
    for node in nodes:
        item = classify_node(node)
        if item is not None:
            yield item


def _fold_item(
    state: Tuple[str, Dict[str, List[Book]]], item: CatalogItem
) -> Tuple[str, Dict[str, List[Book]]]:
    current, buckets = state
    if isinstance(item, SeriesMarker):
        return item.name, buckets
    buckets.setdefault(current, []).append(item.book)
    return current, buckets


def build_catalog(
    items: Iterable[CatalogItem], default_series: str = DEFAULT_SERIES_NAME
) -> List[Series]:
    """Group books under the nearest preceding series marker.

    Series come out in the order their first book was seen and books keep
    document order. A marker with no books after it produces no series.
    """
    initial: Tuple[str, Dict[str, List[Book]]] = (default_series, {})
    _, buckets = reduce(_fold_item, items, initial)
    return [Series(name=name, books=books) for name, books in buckets.items()]


def locate_main_node(soup: BeautifulSoup) -> Tag:
    candidates = soup.find_all("div", class_=MAIN_NODE_CLASS)
    if len(candidates) != 1:
        raise AuthorPageError(
            f"expected one div.{MAIN_NODE_CLASS} block, found {len(candidates)}"
        )
    return candidates[0]


def extract_author_name(soup: BeautifulSoup, author_id: int) -> str:
    candidates = soup.find_all("div", class_=AUTHOR_NODE_CLASS)
    if len(candidates) != 1:
        return str(author_id)
    first = next(iter(candidates[0].children), None)
    if first is None:
        return str(author_id)
    text = _normalize_text(first.get_text() if isinstance(first, Tag) else str(first))
    return text or str(author_id)


def parse_author_page(soup: BeautifulSoup) -> List[Series]:
    main_node = locate_main_node(soup)
    return build_catalog(iter_catalog_items(main_node.find_all(True)))


def count_books(series_list: Iterable[Series]) -> int:
    return sum(len(series.books) for series in series_list)


def safe_filename(name: str, fallback: str = "untitled") -> str:
    """Make a display title usable as a single path component."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", _normalize_text(name))
    cleaned = cleaned.rstrip(". ")
    if cleaned in {"", ".", ".."}:
        return fallback
    return cleaned
