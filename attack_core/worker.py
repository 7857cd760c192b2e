"""Computation threads hosting a simulation engine, and the caller-side client."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Mapping
from time import monotonic
from typing import Any, Optional

from .errors import ComputationError
from .histogram import Histogram
from .models import AttackSetup
from .protocol import (
    ErrorResponse,
    Response,
    SimulationRequest,
    decode_response,
    handle_request,
)
from .simulation import SimulationEngine

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[dict[str, Any]], None]

_STOP = object()


def _nonce_of(message: Mapping[str, Any]) -> Optional[int]:
    try:
        return int(message["nonce"])
    except (KeyError, TypeError, ValueError):
        return None


class ComputationWorker:
    """One thread, one engine; requests are processed to completion in order."""

    def __init__(
        self,
        on_response: ResponseCallback,
        seed: Optional[int] = None,
        name: str = "attack-worker",
    ) -> None:
        self.engine = SimulationEngine(seed)
        self.inbox: queue.Queue[Any] = queue.Queue()
        self._on_response = on_response
        self._busy = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def name(self) -> str:
        return self._thread.name

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def post(self, message: Mapping[str, Any]) -> None:
        self.inbox.put(dict(message))

    def stop(self) -> None:
        """Ask the thread to exit once the request in progress finishes."""

        self.inbox.put(_STOP)

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def take_pending(self) -> list[dict[str, Any]]:
        """Remove and return every request that has not started yet."""

        pending: list[dict[str, Any]] = []
        while True:
            try:
                message = self.inbox.get_nowait()
            except queue.Empty:
                return pending
            if message is not _STOP:
                pending.append(message)

    def _process(self, message: dict[str, Any]) -> dict[str, Any]:
        nonce = _nonce_of(message)
        logger.debug("%s: starting request %s", self.name, nonce)
        try:
            response = handle_request(message, self.engine)
        except Exception as exc:
            logger.exception("%s: request %s failed", self.name, nonce)
            return ErrorResponse(nonce=nonce, error=str(exc)).to_message()
        logger.debug("%s: finished request %s (%d trials)", self.name, nonce, response["numTrials"])
        return response

    def _run(self) -> None:
        while True:
            message = self.inbox.get()
            if message is _STOP:
                logger.debug("%s: stopping", self.name)
                return
            self._busy.set()
            try:
                response = self._process(message)
            finally:
                self._busy.clear()
            try:
                self._on_response(response)
            except Exception:
                logger.exception("%s: response callback failed", self.name)


class WorkerHost:
    """Owns the active computation worker and swaps it for a fresh one on demand."""

    def __init__(self, on_response: ResponseCallback, seed: Optional[int] = None) -> None:
        self._on_response = on_response
        self._seed = seed
        self._lock = threading.Lock()
        self._worker: Optional[ComputationWorker] = None
        self._generation = 0

    @property
    def worker(self) -> Optional[ComputationWorker]:
        return self._worker

    def start(self) -> ComputationWorker:
        """Start a new worker that immediately takes over queued requests.

        A previous worker finishes its current request on its own; nothing
        waits for it.
        """

        with self._lock:
            return self._start_locked()

    def _start_locked(self) -> ComputationWorker:
        self._generation += 1
        seed = None if self._seed is None else self._seed + self._generation - 1
        worker = ComputationWorker(
            self._on_response,
            seed=seed,
            name=f"attack-worker-{self._generation}",
        )
        previous = self._worker
        if previous is not None:
            pending = previous.take_pending()
            previous.stop()
            if previous.busy:
                logger.warning(
                    "%s replaced while a request is in flight; its response may arrive late",
                    previous.name,
                )
            for message in pending:
                worker.post(message)
            logger.debug("%s took over %d pending request(s)", worker.name, len(pending))
        self._worker = worker
        worker.start()
        return worker

    def post(self, message: Mapping[str, Any]) -> None:
        # Held so a message never lands behind a replaced worker's stop marker.
        with self._lock:
            worker = self._worker
            if worker is None or not worker.is_alive():
                worker = self._start_locked()
            worker.post(message)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is not None:
            worker.stop()
            worker.join(timeout)


class DamageClient:
    """Caller side of the boundary: numbers requests and drops stale replies."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._responses: queue.Queue[dict[str, Any]] = queue.Queue()
        self.host = WorkerHost(self._responses.put, seed=seed)
        self._nonce = 0
        self._current: set[int] = set()

    @property
    def current_nonces(self) -> frozenset[int]:
        return frozenset(self._current)

    def _post(self, setup: AttackSetup, iterations: int) -> int:
        self._nonce += 1
        request = SimulationRequest(nonce=self._nonce, iters_requested=iterations, setup=setup)
        self._current.add(request.nonce)
        self.host.post(request.to_message())
        return request.nonce

    def submit(self, setup: AttackSetup, iterations: int) -> int:
        """Send a request that supersedes every earlier one."""

        self._current.clear()
        return self._post(setup, iterations)

    def submit_sharded(self, setup: AttackSetup, iterations: int, shard_size: int) -> list[int]:
        """Split ``iterations`` into requests of at most ``shard_size`` trials."""

        if shard_size <= 0:
            raise ValueError("Shard size must be positive.")
        self._current.clear()
        nonces: list[int] = []
        remaining = iterations
        while remaining > 0:
            chunk = min(shard_size, remaining)
            nonces.append(self._post(setup, chunk))
            remaining -= chunk
        return nonces

    def restart(self) -> None:
        """Start a fresh worker; queued requests move to it."""

        self.host.start()

    def poll(self, timeout: Optional[float] = None) -> Optional[Response]:
        """Return the next current response, or ``None`` once ``timeout`` expires."""

        deadline = None if timeout is None else monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - monotonic())
            try:
                message = self._responses.get(timeout=remaining)
            except queue.Empty:
                return None
            response = decode_response(message)
            if response.nonce not in self._current:
                logger.debug("Discarding stale response %s", response.nonce)
                continue
            self._current.discard(response.nonce)
            return response

    def collect(self, timeout: Optional[float] = None) -> Histogram:
        """Wait for every current request and merge their histograms.

        Raises
        ------
        ComputationError
            If a request failed on the worker.
        TimeoutError
            If the responses do not arrive within ``timeout`` seconds.
        """

        deadline = None if timeout is None else monotonic() + timeout
        merged = Histogram()
        while self._current:
            remaining = None if deadline is None else max(0.0, deadline - monotonic())
            response = self.poll(remaining)
            if response is None:
                raise TimeoutError(f"{len(self._current)} request(s) still pending")
            if isinstance(response, ErrorResponse):
                self._current.clear()
                raise ComputationError(response.error, nonce=response.nonce)
            merged.merge(response.to_histogram())
        return merged

    def close(self, timeout: Optional[float] = None) -> None:
        self._current.clear()
        self.host.shutdown(timeout)
