"""
HTTP helpers shared by the site clients
"""
from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Optional

import requests

from ..core.errors import SourceError, SourceTimeoutError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 6.1; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/62.0.3202.62 Safari/537.36"
)

_CHUNK_SIZE = 16 * 1024
_WATCH_INTERVAL = 0.05


def new_session() -> requests.Session:
    """One session per search call; sessions are never shared across tasks."""
    session = requests.Session()
    session.headers.update({
        'User-Agent': USER_AGENT,
        'Accept': 'text/html,application/xhtml+xml,application/xml',
        'Accept-Language': 'en-US,en;q=0.9',
    })
    return session


def _abort_response(response: requests.Response):
    # Shutting the socket down wakes a read blocked inside a chunk; close() alone does not.
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


def _watch(response, deadline: float, cancel_event, finished: threading.Event, stopped: threading.Event):
    while not finished.wait(_WATCH_INTERVAL):
        if time.monotonic() >= deadline or (cancel_event is not None and cancel_event.is_set()):
            stopped.set()
            _abort_response(response)
            return


def fetch_page(
    session: requests.Session,
    url: str,
    timeout: float,
    source_id=None,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """
    GET url and return the decoded body.

    timeout bounds the whole exchange, body included: a server that keeps
    dripping bytes is cut off once it is spent and SourceTimeoutError is
    raised. Setting cancel_event stops the download the same way and raises
    SourceError. Transport errors and non-200 answers raise SourceError.
    """
    logger.debug("GET %s (timeout=%.1fs)", url, timeout)
    deadline = time.monotonic() + timeout
    finished = threading.Event()
    stopped = threading.Event()

    def interrupted() -> SourceError:
        if cancel_event is not None and cancel_event.is_set():
            return SourceError(f"fetch of {url} cancelled", source_id=source_id)
        return SourceTimeoutError(f"fetch of {url} timed out after {timeout:g}s", source_id=source_id)

    try:
        with session.get(url, timeout=timeout, stream=True) as response:
            if response.status_code != 200:
                raise SourceError(
                    f"status code error: {response.status_code} {response.reason or ''}".strip(),
                    source_id=source_id,
                )
            watchdog = threading.Thread(
                target=_watch,
                args=(response, deadline, cancel_event, finished, stopped),
                name="fetch-watchdog",
                daemon=True,
            )
            watchdog.start()
            encoding = response.encoding or "utf-8"
            chunks = []
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if stopped.is_set() or time.monotonic() >= deadline:
                    raise interrupted()
                if cancel_event is not None and cancel_event.is_set():
                    raise interrupted()
                if chunk:
                    chunks.append(chunk)
            if stopped.is_set():
                raise interrupted()
    except requests.RequestException as e:
        if stopped.is_set() or time.monotonic() >= deadline:
            raise interrupted() from e
        raise SourceError(f"could not launch request: {e}", source_id=source_id) from e
    finally:
        finished.set()

    logger.debug("Received %s from %s", response.status_code, url)
    body = b"".join(chunks)
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
