"""Shared fixtures: an in-memory stand-in for requests.Session and zip builders."""

import io
import time
import zipfile
from typing import Dict, List, Union

import pytest
import requests


class FakeResponse:
    def __init__(
        self,
        body: Union[bytes, str] = b"",
        status_code: int = 200,
        fail_after: int = -1,
        delay: float = 0.0,
    ):
        if isinstance(body, str):
            self.text = body
            self.content = body.encode("utf-8")
        else:
            self.content = body
            self.text = body.decode("utf-8", errors="replace")
        self.status_code = status_code
        self.fail_after = fail_after
        self.delay = delay
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self.closed = True

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for sent, start in enumerate(range(0, len(self.content), chunk_size)):
            if sent == self.fail_after:
                raise requests.exceptions.ChunkedEncodingError("connection dropped")
            if self.delay:
                time.sleep(self.delay)
            yield self.content[start : start + chunk_size]


class FakeSession:
    """Serves canned responses by URL; unknown URLs get a 404."""

    def __init__(self, routes: Dict[str, object]):
        self.routes = routes
        self.headers: Dict[str, str] = {}
        self.requested: List[str] = []
        self.closed = False

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.requested.append(url)
        payload = self.routes.get(url)
        if payload is None:
            return FakeResponse(status_code=404)
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, FakeResponse):
            return payload
        return FakeResponse(payload)

    def close(self) -> None:
        self.closed = True


def build_zip(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def zip_bytes():
    return build_zip


@pytest.fixture
def write_zip(tmp_path):
    def _write(name: str, entries: Dict[str, bytes], folder=None):
        target = (folder or tmp_path) / name
        target.write_bytes(build_zip(entries))
        return target

    return _write
