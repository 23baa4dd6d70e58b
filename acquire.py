"""
Per-book download pipeline: fetch the archive, unpack it, rename the book.

Every book of a series is handled on its own worker thread. Whatever goes
wrong with one book is recorded in its ``BookResult`` and the rest of the
series carries on.
"""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional

import requests

from catalog import Book, CrawlerError, Series, safe_filename


BASE_URL = "https://fantasy-worlds.net/"
DEFAULT_WORKERS = 4
DEFAULT_TIMEOUT = 60.0
CHUNK_SIZE = 64 * 1024

STATUS_SUCCESS = "success"
STATUS_AMBIGUOUS = "ambiguous"
STATUS_FAILED = "failed"
STATUS_CONFLICT = "conflict"
STATUS_ACQUISITION_FAILED = "acquisition_failed"


class AcquisitionError(CrawlerError):
    """The archive for a book could not be downloaded."""


class ExtractionError(CrawlerError):
    """The downloaded archive could not be read or unpacked."""


@dataclass
class MaterializeResult:
    status: str
    files: List[Path] = field(default_factory=list)
    message: str = ""


@dataclass
class BookResult:
    series: str
    book: Book
    status: str
    files: List[Path] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in {STATUS_SUCCESS, STATUS_AMBIGUOUS}


@dataclass
class DownloadReport:
    results: List[BookResult] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        tally: Dict[str, int] = {}
        for result in self.results:
            tally[result.status] = tally.get(result.status, 0) + 1
        return tally

    @property
    def failures(self) -> List[BookResult]:
        return [result for result in self.results if not result.ok]


def author_url(author_id: int) -> str:
    return f"{BASE_URL}author/id{author_id}"


def download_url(book_id: int) -> str:
    return f"{BASE_URL}lib/id{book_id}/download"


def book_filename(book: Book) -> str:
    return safe_filename(book.name, fallback=f"book-{book.id}")


def acquire_archive(
    session: requests.Session,
    book: Book,
    folder: Path,
    timeout: float = DEFAULT_TIMEOUT,
) -> Path:
    """Download the zip archive of ``book`` into ``folder``.

    Each call writes to its own fresh ``.book-<id>-*.zip`` file, so books
    with the same (or same-after-cleanup) title never share an archive. The
    file is removed again if the transfer fails half way.
    """
    url = download_url(book.id)
    try:
        fd, name = tempfile.mkstemp(prefix=f".book-{book.id}-", suffix=".zip", dir=folder)
    except OSError as exc:
        raise AcquisitionError(f"cannot create archive file in {folder}: {exc}") from exc
    target = Path(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            with session.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
    except (requests.RequestException, OSError) as exc:
        target.unlink(missing_ok=True)
        raise AcquisitionError(f"failed to download {url}: {exc}") from exc
    except Exception:
        target.unlink(missing_ok=True)
        raise
    return target


def _entry_parts(name: str) -> List[str]:
    # same normalisation ZipFile.extractall applies to member names
    parts = name.replace("/", os.sep).split(os.sep)
    return [part for part in parts if part not in {"", os.curdir, os.pardir}]


def _file_entries(archive_path: Path) -> List[List[str]]:
    with zipfile.ZipFile(archive_path) as archive:
        names = [info.filename for info in archive.infolist() if not info.is_dir()]
    return [parts for parts in map(_entry_parts, names) if parts]


def _place(source: Path, target: Path) -> bool:
    if target.exists():
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(target))
    return True


def materialize_book(archive_path: Path, folder: Path, book: Book) -> MaterializeResult:
    """Unpack ``archive_path`` into ``folder`` and name the book after its title.

    An archive with exactly one file is renamed to ``<title><suffix>``. The
    suffix is appended, not substituted, so a dotted title such as
    ``Vol. 2`` keeps its full text. Any other layout is unpacked as is.
    Existing files are never overwritten. The archive itself is deleted no
    matter how this ends.
    """
    archive_path = Path(archive_path)
    folder = Path(folder)
    staging: Optional[Path] = None
    archive_removed = False
    try:
        try:
            entries = _file_entries(archive_path)
            staging = Path(tempfile.mkdtemp(prefix=f".book-{book.id}-", dir=folder))
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(staging)
            archive_path.unlink(missing_ok=True)
            archive_removed = True
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
            raise ExtractionError(f"cannot unpack {archive_path.name}: {exc}") from exc

        if len(entries) == 1:
            parts = entries[0]
            target = folder / f"{book_filename(book)}{PurePosixPath(parts[-1]).suffix}"
            if not _place(staging.joinpath(*parts), target):
                return MaterializeResult(
                    STATUS_CONFLICT, message=f"{target.name} already exists"
                )
            return MaterializeResult(STATUS_SUCCESS, files=[target])

        placed: List[Path] = []
        clashes: List[str] = []
        for parts in entries:
            target = folder.joinpath(*parts)
            if _place(staging.joinpath(*parts), target):
                placed.append(target)
            else:
                clashes.append("/".join(parts))
        if clashes:
            return MaterializeResult(
                STATUS_CONFLICT,
                files=placed,
                message=f"already exist: {', '.join(clashes)}",
            )
        return MaterializeResult(
            STATUS_AMBIGUOUS,
            files=placed,
            message=f"archive holds {len(entries)} files, kept original names",
        )
    except ExtractionError as exc:
        return MaterializeResult(STATUS_FAILED, message=str(exc))
    finally:
        if staging is not None:
            shutil.rmtree(staging, ignore_errors=True)
        if not archive_removed:
            archive_path.unlink(missing_ok=True)


def download_book(
    session: requests.Session,
    series_name: str,
    book: Book,
    folder: Path,
    timeout: float = DEFAULT_TIMEOUT,
) -> BookResult:
    print(f"Downloading '{book.name}'")
    try:
        archive_path = acquire_archive(session, book, folder, timeout=timeout)
    except AcquisitionError as exc:
        print(f"[error] {book.name}: {exc}", file=sys.stderr)
        return BookResult(series_name, book, STATUS_ACQUISITION_FAILED, message=str(exc))

    outcome = materialize_book(archive_path, folder, book)
    if outcome.status == STATUS_AMBIGUOUS:
        print(f"[warn] {book.name}: {outcome.message}", file=sys.stderr)
    elif outcome.status == STATUS_CONFLICT:
        print(f"[warn] {book.name}: not overwriting, {outcome.message}", file=sys.stderr)
    elif outcome.status == STATUS_FAILED:
        print(f"[error] {book.name}: {outcome.message}", file=sys.stderr)
    else:
        print(f"Downloaded '{book.name}'")
    return BookResult(series_name, book, outcome.status, outcome.files, outcome.message)


def download_series(
    session: requests.Session,
    series: Series,
    root: Path,
    workers: int = DEFAULT_WORKERS,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[BookResult]:
    """Download every book of ``series`` in parallel and wait for all of them."""
    if not series.books:
        return []
    folder = Path(root) / safe_filename(series.name)
    folder.mkdir(parents=True, exist_ok=True)

    results: List[BookResult] = []
    with ThreadPoolExecutor(max_workers=max(1, workers)) as ex:
        future_map = {
            ex.submit(download_book, session, series.name, book, folder, timeout): book
            for book in series.books
        }
        for future in as_completed(future_map):
            book = future_map[future]
            try:
                results.append(future.result())
            except Exception as exc:  # noqa: BLE001
                print(f"[error] {book.name}: {exc}", file=sys.stderr)
                results.append(BookResult(series.name, book, STATUS_FAILED, message=str(exc)))
    return results


def download_catalog(
    session: requests.Session,
    series_list: Iterable[Series],
    root: Path,
    workers: int = DEFAULT_WORKERS,
    timeout: float = DEFAULT_TIMEOUT,
    on_series_done: Optional[Callable[[Series, List[BookResult]], None]] = None,
) -> DownloadReport:
    report = DownloadReport()
    for series in series_list:
        results = download_series(session, series, root, workers=workers, timeout=timeout)
        report.results.extend(results)
        if on_series_done is not None:
            on_series_done(series, results)
    return report
