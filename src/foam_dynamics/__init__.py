"""
foam_dynamics - control loop and physical step on top of foam_core.

EXPORTS:
- Configuration: SimulationConfig, PageRankParams, MonteCarloParams,
  ProjectorParams, GradientParams
- Physical step: project_constraints, catchment_gradient, integrate_points,
  VerletIntegrator
- Coordination: TopologyCache, BrainRequest, BrainResponse, BrainWorker,
  run_brain, FoamSimulation
"""

from .config import (
    SimulationConfig,
    PageRankParams,
    MonteCarloParams,
    ProjectorParams,
    GradientParams,
    resolve_method,
)

from .projector import ProjectorStats, project_constraints, score_directive

from .gradient import (
    catchment_gradient,
    integrate_points,
    VerletIntegrator,
    homothety,
)

from .cache import CacheEntry, TopologyCache

from .brain import (
    BrainRequest,
    BrainResponse,
    BrainWorker,
    run_brain,
    run_brain_message,
    score_foam,
)

from .simulation import FoamSimulation, TickReport
