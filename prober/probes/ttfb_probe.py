import logging
import socket
import threading
import time
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3 import PoolManager
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError
from urllib3.util import Timeout

from metrics.util import round2
from prober.models import Sample, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 45.0
DEFAULT_CACHE_HEADER = "x-nextjs-cache"

REQUEST_HEADERS: Dict[str, str] = {
    "User-Agent": "TTFB-Monitor/1.0",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class ProbeTimeout(Exception):
    """Raised internally when a request outlives its deadline"""


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (requests.exceptions.Timeout, ProbeTimeout, Urllib3TimeoutError)):
        return True
    # iter_content re-wraps urllib3 read timeouts in a plain ConnectionError
    return any(isinstance(arg, Urllib3TimeoutError) for arg in getattr(exc, "args", ()))


class Watchdog:
    """Shuts down every connection opened under it once ``seconds`` have passed.

    urllib3 timeouts bound each socket operation separately, so a server that
    trickles bytes never trips them. Shutting the socket down from a timer
    thread unblocks whatever read is in progress.
    """

    def __init__(self, seconds: float):
        self.expired = threading.Event()
        self._lock = threading.Lock()
        self._connections: List = []
        self._timer = threading.Timer(max(seconds, 0.0), self._expire)
        self._timer.daemon = True

    def __enter__(self):
        self._timer.start()
        return self

    def __exit__(self, *exc):
        self._timer.cancel()
        return False

    def track(self, conn):
        with self._lock:
            self._connections.append(conn)
            expired = self.expired.is_set()
        if expired:
            _shutdown(conn)

    def _expire(self):
        with self._lock:
            self.expired.set()
            connections = list(self._connections)
        for conn in connections:
            _shutdown(conn)


def _shutdown(conn):
    # sock is None until connect() returns; connect is bounded by the urllib3 timeout
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("Socket already closed at deadline: %s", e)


class _WatchedPoolMixin:
    watchdog: Optional[Watchdog] = None

    def _new_conn(self):
        conn = super()._new_conn()
        if self.watchdog is not None:
            self.watchdog.track(conn)
        return conn


class _WatchedHTTPPool(_WatchedPoolMixin, HTTPConnectionPool):
    pass


class _WatchedHTTPSPool(_WatchedPoolMixin, HTTPSConnectionPool):
    pass


class _WatchedPoolManager(PoolManager):
    def __init__(self, *args, watchdog: Optional[Watchdog] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.watchdog = watchdog
        self.pool_classes_by_scheme = {"http": _WatchedHTTPPool, "https": _WatchedHTTPSPool}

    def _new_pool(self, scheme, host, port, request_context=None):
        pool = super()._new_pool(scheme, host, port, request_context)
        pool.watchdog = self.watchdog
        return pool


class WatchedAdapter(HTTPAdapter):
    """Transport adapter whose connections are registered with a :class:`Watchdog`"""

    def __init__(self, watchdog: Watchdog):
        # HTTPAdapter.__init__ calls init_poolmanager
        self.watchdog = watchdog
        super().__init__(max_retries=0)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        self._pool_connections = connections
        self._pool_maxsize = maxsize
        self._pool_block = block
        self.poolmanager = _WatchedPoolManager(num_pools=connections, maxsize=maxsize,
                                               block=block, watchdog=self.watchdog,
                                               **pool_kwargs)


class TTFBProbe:
    """Time-To-First-Byte probe for a single URL.

    Each call to :meth:`measure` issues one GET on a fresh connection and
    resolves to exactly one :class:`Sample`. Network failures and timeouts are
    recorded on the sample, never raised.

    TTFB is the time from dispatch until the response headers arrive. The body is
    read and discarded afterwards so the connection is released; that time is not
    part of the measurement. ``timeout_s`` is one wall-clock ceiling from dispatch
    through the end of the body.
    """

    def __init__(self, timeout_s: float = DEFAULT_TIMEOUT_S,
                 cache_header: str = DEFAULT_CACHE_HEADER,
                 follow_redirects: bool = False,
                 chunk_size: int = 64 * 1024):
        if timeout_s <= 0:
            raise ValueError(f"timeout must be positive, got {timeout_s}")
        self.timeout_s = timeout_s
        self.cache_header = cache_header
        self.follow_redirects = follow_redirects
        self.chunk_size = chunk_size

    @property
    def timeout_message(self) -> str:
        return f"Request timeout ({self.timeout_s:g}s)"

    def measure(self, url: str) -> Sample:
        timestamp = utc_now_iso()
        start = time.perf_counter()

        try:
            ttfb_ms, status_code, cache_status = self._request(url, start)
        except (requests.exceptions.RequestException, Urllib3HTTPError, ProbeTimeout, OSError) as e:
            if _is_timeout(e):
                logger.info("Probe of %s timed out after %.0fs", url, self.timeout_s)
                return Sample.failure(timestamp, self.timeout_message)
            logger.info("Probe of %s failed: %s", url, e)
            return Sample.failure(timestamp, str(e) or type(e).__name__)

        sample = Sample(
            timestamp=timestamp,
            ttfb=round2(ttfb_ms),
            status_code=status_code,
            cache_status=cache_status,
        )
        logger.debug("Probe of %s: %.2fms status=%s cache=%s",
                     url, sample.ttfb, status_code, cache_status)
        return sample

    def _request(self, url: str, start: float):
        with Watchdog(self.timeout_s - (time.perf_counter() - start)) as watchdog, \
                requests.Session() as session:
            adapter = WatchedAdapter(watchdog)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            try:
                # stream=True returns as soon as the headers are parsed
                response = session.get(
                    url,
                    headers=REQUEST_HEADERS,
                    timeout=Timeout(total=self.timeout_s),
                    allow_redirects=self.follow_redirects,
                    stream=True,
                )
                ttfb_ms = (time.perf_counter() - start) * 1000
                with response:
                    cache_status: Optional[str] = response.headers.get(self.cache_header)
                    self._drain(response)
            except (requests.exceptions.RequestException, Urllib3HTTPError, OSError) as e:
                if watchdog.expired.is_set():
                    raise ProbeTimeout(self.timeout_message) from e
                raise
            # a socket cut mid-headers or mid-body can also read as a clean end of stream
            if watchdog.expired.is_set():
                raise ProbeTimeout(self.timeout_message)
            return ttfb_ms, response.status_code, cache_status

    def _drain(self, response: requests.Response):
        for _ in response.iter_content(chunk_size=self.chunk_size):
            pass


def probe(url: str, timeout_s: float = DEFAULT_TIMEOUT_S,
          cache_header: str = DEFAULT_CACHE_HEADER) -> Sample:
    """One-off probe with default settings"""
    return TTFBProbe(timeout_s=timeout_s, cache_header=cache_header).measure(url)
