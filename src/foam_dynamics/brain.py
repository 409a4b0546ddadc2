"""
Brain: Edge Scoring Behind a Message Contract
=============================================

The scoring pass ("Brain") is a pure function of a Foam snapshot. It talks
to the control loop only through plain messages (dicts of numbers and
numpy arrays), so it can run inline, on a thread or in another process.

REQUEST  (BrainRequest.to_message)
    fingerprint, method ("pagerank" | "montecarlo"), params,
    points (N,3) f64, tetrahedra (T,4) i64, centers (T,3) f64,
    dual_edges (E,2) i64, face_pairs (T,4,2) i64, periodic

RESPONSE (BrainResponse.to_message)
    fingerprint, method, params (echoed), runtime_ms,
    keys (E,2) i64, values (E,) f64, stats {count, mean, variance}

BrainWorker holds at most one request in flight. A newer submit() or
discard() drops the older result; nothing is ever preempted.
"""

import time
import numpy as np
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from foam_core.analysis.pagerank import pagerank_scores
from foam_core.analysis.random_walk import random_walk_scores
from foam_core.analysis.scores import score_summary, to_score_map
from foam_core.builders.foam import Foam, build_foam
from foam_core.spec.structures import EdgeKey, array_to_keys, keys_to_array

from .config import MonteCarloParams, PageRankParams, resolve_method
from .constants import METHOD_MONTECARLO

REQUEST_FIELDS = ('fingerprint', 'method', 'params', 'points', 'tetrahedra', 'centers',
                  'dual_edges', 'face_pairs', 'periodic')
RESPONSE_FIELDS = ('fingerprint', 'method', 'params', 'runtime_ms', 'keys', 'values', 'stats')


def _missing(message: dict, required) -> list:
    return [k for k in required if k not in message]


def method_param_block(method: str, params: Optional[dict]):
    """Validated parameter dataclass for a scoring method."""
    params = dict(params or {})
    if resolve_method(method) == METHOD_MONTECARLO:
        return MonteCarloParams(**params)
    return PageRankParams(**params)


@dataclass
class BrainRequest:
    fingerprint: int
    method: str
    params: dict
    points: np.ndarray
    tetrahedra: np.ndarray
    centers: np.ndarray
    dual_edges: np.ndarray
    face_pairs: np.ndarray
    periodic: bool

    def __post_init__(self):
        self.method = resolve_method(self.method)
        self.params = dict(self.params or {})

    @classmethod
    def from_foam(cls, foam: Foam, method: str, params: Optional[dict] = None) -> "BrainRequest":
        return cls(
            fingerprint=foam.fingerprint,
            method=method,
            params=params,
            points=foam.points,
            tetrahedra=foam.tetrahedra,
            centers=foam.centers,
            dual_edges=foam.dual_edges,
            face_pairs=foam.face_pairs(),
            periodic=foam.periodic,
        )

    def to_message(self) -> dict:
        """Typed-buffer copy, safe to hand to another thread or process."""
        return {
            'fingerprint': int(self.fingerprint),
            'method': self.method,
            'params': dict(self.params),
            'points': np.array(self.points, dtype=np.float64),
            'tetrahedra': np.array(self.tetrahedra, dtype=np.int64),
            'centers': np.array(self.centers, dtype=np.float64),
            'dual_edges': np.array(self.dual_edges, dtype=np.int64).reshape(-1, 2),
            'face_pairs': np.array(self.face_pairs, dtype=np.int64).reshape(-1, 4, 2),
            'periodic': bool(self.periodic),
        }

    @classmethod
    def from_message(cls, message: dict) -> "BrainRequest":
        missing = _missing(message, REQUEST_FIELDS)
        if missing:
            raise ValueError(f"Brain request is missing fields: {missing}")
        return cls(**{k: message[k] for k in REQUEST_FIELDS})

    def to_foam(self) -> Foam:
        """
        Rebuild the Foam snapshot the request was made from.

        Raises:
            ValueError if face_pairs is malformed or dual_edges disagree with it
        """
        foam = build_foam(self.points, self.tetrahedra, self.periodic, centering="barycenter",
                          face_pairs=self.face_pairs)
        centers = np.asarray(self.centers, dtype=float)
        if centers.shape != foam.centers.shape:
            raise ValueError(
                f"Request centers have shape {centers.shape}, expected {foam.centers.shape}"
            )
        if not np.array_equal(np.asarray(self.dual_edges).reshape(-1, 2), foam.dual_edges):
            raise ValueError("Request dual_edges do not match its tetrahedra")
        return replace(foam, centers=centers)


@dataclass
class BrainResponse:
    fingerprint: int
    method: str
    params: dict
    runtime_ms: float
    keys: np.ndarray
    values: np.ndarray
    stats: Dict[str, float] = field(default_factory=dict)

    def score_map(self) -> Dict[EdgeKey, float]:
        return to_score_map(array_to_keys(self.keys), self.values)

    def to_message(self) -> dict:
        return {
            'fingerprint': int(self.fingerprint),
            'method': self.method,
            'params': dict(self.params),
            'runtime_ms': float(self.runtime_ms),
            'keys': np.array(self.keys, dtype=np.int64).reshape(-1, 2),
            'values': np.array(self.values, dtype=np.float64).ravel(),
            'stats': dict(self.stats),
        }

    @classmethod
    def from_message(cls, message: dict) -> "BrainResponse":
        missing = _missing(message, RESPONSE_FIELDS)
        if missing:
            raise ValueError(f"Brain response is missing fields: {missing}")
        keys = np.asarray(message['keys'], dtype=np.int64).reshape(-1, 2)
        values = np.asarray(message['values'], dtype=np.float64).ravel()
        if len(keys) != len(values):
            raise ValueError(f"Brain response has {len(keys)} keys but {len(values)} values")
        return cls(
            fingerprint=int(message['fingerprint']),
            method=message['method'],
            params=dict(message['params']),
            runtime_ms=float(message['runtime_ms']),
            keys=keys,
            values=values,
            stats=dict(message['stats']),
        )


def score_foam(foam: Foam, method: str, params: Optional[dict] = None,
               half_edge_graph=None, link_graph=None) -> Dict[EdgeKey, float]:
    """Dispatch to the scoring engine of `method` with validated params."""
    block = method_param_block(method, params)
    if resolve_method(method) == METHOD_MONTECARLO:
        return random_walk_scores(foam, graph=half_edge_graph, **block.as_kwargs())
    return pagerank_scores(foam, graph=link_graph, **block.as_kwargs())


def run_brain(request: BrainRequest, foam: Optional[Foam] = None,
              half_edge_graph=None, link_graph=None) -> BrainResponse:
    """
    One scoring pass.

    Args:
        request: BrainRequest
        foam: the live snapshot, skipping the rebuild from the request
              (inline execution only; must match request.fingerprint)
        half_edge_graph, link_graph: prebuilt graphs for `foam`

    Returns:
        BrainResponse carrying request.fingerprint
    """
    t0 = time.perf_counter()
    if foam is None:
        foam = request.to_foam()
    elif foam.fingerprint != request.fingerprint:
        raise ValueError(
            f"Foam fingerprint {foam.fingerprint:#010x} does not match "
            f"request {request.fingerprint:#010x}"
        )
    scores = score_foam(foam, request.method, request.params,
                        half_edge_graph=half_edge_graph, link_graph=link_graph)
    runtime_ms = (time.perf_counter() - t0) * 1000.0

    keys = list(scores.keys())
    return BrainResponse(
        fingerprint=request.fingerprint,
        method=request.method,
        params=dict(request.params),
        runtime_ms=runtime_ms,
        keys=keys_to_array(keys),
        values=np.array([scores[k] for k in keys], dtype=np.float64),
        stats=score_summary(scores),
    )


def run_brain_message(message: dict) -> dict:
    """Message in, message out (executor entry point)."""
    return run_brain(BrainRequest.from_message(message)).to_message()


class BrainWorker:
    """
    One-shot scoring channel on a concurrent.futures executor.

    Args:
        kind: "thread" (default) or "process"
        executor: an existing executor to use instead (not shut down here)
    """

    def __init__(self, kind: str = "thread", executor=None):
        self._owns_executor = executor is None
        if executor is None:
            if kind == "thread":
                executor = ThreadPoolExecutor(max_workers=1)
            elif kind == "process":
                executor = ProcessPoolExecutor(max_workers=1)
            else:
                raise ValueError(f"Unknown worker kind {kind!r}; expected 'thread' or 'process'")
        self._executor = executor
        self._pending: Optional[Future] = None
        self._pending_fingerprint: Optional[int] = None

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def pending_fingerprint(self) -> Optional[int]:
        return self._pending_fingerprint

    def submit(self, request: BrainRequest) -> Future:
        """Send a request; any earlier result still pending is discarded."""
        self.discard()
        self._pending = self._executor.submit(run_brain_message, request.to_message())
        self._pending_fingerprint = int(request.fingerprint)
        return self._pending

    def poll(self) -> Optional[BrainResponse]:
        """Completed response, or None while in flight / idle."""
        if self._pending is None or not self._pending.done():
            return None
        future = self._pending
        self._pending = None
        self._pending_fingerprint = None
        return BrainResponse.from_message(future.result())

    def join(self, timeout: Optional[float] = None) -> bool:
        """Block until the pending request is done, without consuming it."""
        if self._pending is None:
            return False
        wait([self._pending], timeout=timeout)
        return self._pending.done()

    def wait(self, timeout: Optional[float] = None) -> Optional[BrainResponse]:
        """Block until the pending response is ready."""
        if self._pending is None:
            return None
        self._pending.result(timeout=timeout)
        return self.poll()

    def discard(self):
        """Forget the pending request; it still runs to completion if started."""
        if self._pending is not None:
            self._pending.cancel()
        self._pending = None
        self._pending_fingerprint = None

    def shutdown(self, wait: bool = True):
        self.discard()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
