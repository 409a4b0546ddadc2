"""
Control Loop
============

FoamSimulation owns the live point set and Foam and advances them one
tick at a time:

    1. topology handshake   if the last tick retriangulated, consume the
                            dirty flag, prime the cache, force a Brain run
                            for the new fingerprint and SKIP the physical
                            step of this tick
    2. Brain slot           collect a finished response (dropped silently
                            if its fingerprint is not the live one); start
                            a new pass every `brain_every` physical steps
    3. physical step        projector (scores) or catchment gradient
                            (knots); only once a Brain result for the live
                            fingerprint has been received
    4. topology update      every `retriangulate_every` physical steps:
                            retriangulate, invalidate the old cache entry,
                            set the dirty and prime flags; otherwise
                            refresh centers for the moved points

The Brain runs inline unless a BrainWorker is supplied.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from foam_core.analysis.knots import KnotResult, detect_knots
from foam_core.builders.foam import Foam, build_foam
from foam_core.builders.periodic import wrap
from foam_core.builders.triangulation import triangulate
from foam_core.spec.structures import EdgeKey

from .brain import BrainRequest, BrainResponse, BrainWorker, run_brain
from .cache import TopologyCache
from .config import SimulationConfig
from .constants import MOTION_GRADIENT
from .gradient import VerletIntegrator, catchment_gradient, integrate_points
from .projector import ProjectorStats, project_constraints


@dataclass
class TickReport:
    tick: int
    fingerprint: int
    skipped: bool = False                   # physical step not run this tick
    retriangulated: bool = False            # topology replaced at the end of the tick
    brain_started: bool = False
    response: Optional[BrainResponse] = None
    projector: Optional[ProjectorStats] = None
    n_knots: Optional[int] = None


class FoamSimulation:
    """
    Args:
        points: (N, 3) initial positions (wrapped into [0, 1)³ when periodic)
        config: SimulationConfig (defaults if None)
        triangulator: callable (points, periodic) -> quadruples
        worker: BrainWorker for off-thread scoring (inline if None)
    """

    def __init__(self, points, config: Optional[SimulationConfig] = None,
                 triangulator: Optional[Callable] = None,
                 worker: Optional[BrainWorker] = None):
        self.config = config if config is not None else SimulationConfig()
        points = np.array(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Points must have shape (N, 3), got {points.shape}")
        self.points = wrap(points) if self.config.periodic else points
        self.triangulator = triangulator
        self.worker = worker
        self.cache = TopologyCache()

        self.tick_count = 0
        self.physical_steps = 0
        self._steps_since_brain = 0
        self.topology_dirty = False
        self.prime_on_brain = True

        self.scores: Dict[EdgeKey, float] = {}
        self.score_fingerprint: Optional[int] = None
        self.last_response: Optional[BrainResponse] = None
        self.last_stats = ProjectorStats()
        self.dropped_responses = 0

        self._knots: Optional[KnotResult] = None
        self._verlet: Optional[VerletIntegrator] = None
        self.foam = self._build()

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def _build(self) -> Foam:
        tets, images = triangulate(self.points, self.config.periodic, self.triangulator,
                                   return_images=True)
        return build_foam(self.points, tets, self.config.periodic, self.config.centering,
                          images=images)

    @property
    def fingerprint(self) -> int:
        return self.foam.fingerprint

    def retriangulate(self):
        """Replace the topology; the next tick runs the priming handshake."""
        old = self.foam.fingerprint
        self.foam = self._build()
        self.cache.invalidate(old)
        self._knots = None
        self.topology_dirty = True
        self.prime_on_brain = True

    def consume_topology_dirty(self) -> bool:
        if self.topology_dirty:
            self.topology_dirty = False
            return True
        return False

    def knots(self) -> KnotResult:
        """Knot decomposition of the live foam (recomputed after every move)."""
        if self._knots is None:
            self._knots = detect_knots(self.foam)
        return self._knots

    # ------------------------------------------------------------------
    # Brain
    # ------------------------------------------------------------------

    def _request(self) -> BrainRequest:
        params = self.config.method_params().as_kwargs()
        return BrainRequest.from_foam(self.foam, self.config.method, params)

    def _accept(self, response: BrainResponse) -> bool:
        if response.fingerprint != self.foam.fingerprint:
            self.dropped_responses += 1
            return False
        self.scores = response.score_map()
        self.score_fingerprint = response.fingerprint
        self.last_response = response
        self.prime_on_brain = False
        return True

    def start_brain(self) -> Optional[BrainResponse]:
        """
        Launch a scoring pass for the live foam.

        Returns:
            the response when run inline (already accepted), else None
        """
        self._steps_since_brain = 0
        request = self._request()
        if self.worker is not None:
            self.worker.submit(request)
            return None
        entry = self.cache.ensure(self.foam)
        half_edge_graph, link_graph = entry.graphs(self.foam)
        response = run_brain(request, foam=self.foam,
                             half_edge_graph=half_edge_graph, link_graph=link_graph)
        self._accept(response)
        return response

    def collect_brain(self) -> Optional[BrainResponse]:
        """Accept a finished worker response for the live fingerprint."""
        if self.worker is None:
            return None
        response = self.worker.poll()
        if response is not None and self._accept(response):
            return response
        return None

    def scores_current(self) -> bool:
        return self.score_fingerprint == self.foam.fingerprint and not self.prime_on_brain

    # ------------------------------------------------------------------
    # Physical step
    # ------------------------------------------------------------------

    def physical_step(self) -> Optional[ProjectorStats]:
        if self.config.motion == MOTION_GRADIENT:
            self._gradient_step()
            return None
        self.last_stats = project_constraints(self.points, self.foam, self.scores,
                                              self.config.projector,
                                              edge_to_face=self.cache.ensure(self.foam).edge_to_face)
        return self.last_stats

    def _gradient_step(self):
        params = self.config.gradient
        grad = catchment_gradient(self.foam, self.knots(), params)
        if params.use_verlet:
            if self._verlet is None or self._verlet.n_points != len(self.points):
                self._verlet = VerletIntegrator(len(self.points), self.config.periodic,
                                                damping=params.damping)
                self._verlet.initialize(self.points)
            else:
                self._verlet.set_positions(self.points)
            self._verlet.set_forces(grad)
            new = self._verlet.integrate(params.dt, params.max_delta)
        else:
            new = integrate_points(self.points, grad, params.dt, self.config.periodic,
                                   params.max_delta)
        self.points[:] = new

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Advance by one control-loop tick."""
        self.tick_count += 1
        report = TickReport(tick=self.tick_count, fingerprint=self.foam.fingerprint)

        if self.consume_topology_dirty():
            self.cache.prime(self.foam)
            report.response = self.start_brain()
            report.brain_started = True
            report.skipped = True
            return report

        collected = self.collect_brain()
        if collected is not None:
            report.response = collected

        brain_due = self.prime_on_brain or self._steps_since_brain >= self.config.brain_every
        worker_busy = self.worker is not None and self.worker.busy
        if brain_due and not worker_busy:
            response = self.start_brain()
            report.brain_started = True
            if response is not None:
                report.response = response

        if not self.scores_current():
            report.skipped = True
            return report

        report.projector = self.physical_step()
        self.physical_steps += 1
        self._steps_since_brain += 1
        if self.config.motion == MOTION_GRADIENT:
            report.n_knots = self.knots().n_knots

        if self.physical_steps % self.config.retriangulate_every == 0:
            self.retriangulate()
            report.retriangulated = True
        else:
            self.foam = self.foam.refresh(self.points)
            self._knots = None
        return report

    def run(self, n_ticks: int, callback: Optional[Callable[[TickReport], None]] = None
            ) -> List[TickReport]:
        reports = []
        for _ in range(int(n_ticks)):
            report = self.tick()
            if callback is not None:
                callback(report)
            reports.append(report)
        return reports
