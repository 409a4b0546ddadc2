"""
Simulation Defaults
===================

Default values of the control loop, the physical step and the scorers.
The config dataclasses (config.py) read their defaults from here.
"""

# ---------------------------------------------------------------------
# SCORING METHODS
# ---------------------------------------------------------------------

METHOD_PAGERANK = "pagerank"
METHOD_MONTECARLO = "montecarlo"
METHOD_ALIASES = {
    "pagerank": METHOD_PAGERANK,
    "montecarlo": METHOD_MONTECARLO,
    "mc": METHOD_MONTECARLO,
}

# PageRank
PAGERANK_DEPTH = 15
PAGERANK_DAMPING = 0.85

# Monte Carlo
MC_STEPS = 12          # L: max steps per walker
MC_WALKERS = 64        # K: walkers per half-edge
MC_ALPHA = 0.9         # per-step survival factor

# ---------------------------------------------------------------------
# PHYSICAL STEP
# ---------------------------------------------------------------------

MOTION_PROJECTOR = "projector"
MOTION_GRADIENT = "gradient"
MOTION_MODES = (MOTION_PROJECTOR, MOTION_GRADIENT)

TARGET_FACE = "face"
TARGET_TETRAHEDRON = "tetrahedron"
TARGET_ALIASES = {
    "face": TARGET_FACE,
    "tetrahedron": TARGET_TETRAHEDRON,
    "tet": TARGET_TETRAHEDRON,
}

# Constraint projector
PROJECTOR_THRESHOLD = 0.5
PROJECTOR_STRENGTH = 0.05      # g: fractional change per step at |r| = 1
PROJECTOR_GAMMA = 1.0          # shaping exponent (1 = identity)
PROJECTOR_MAX_SCALE = 0.10     # |p| clamp per step
PROJECTOR_COMPLIANCE = 1e-4
PROJECTOR_CLAMP = 0.005        # per-iteration displacement clamp
PROJECTOR_ITERATIONS = 8

# Softness = 1 / (1 + COMPLIANCE_STIFFNESS · compliance)
COMPLIANCE_STIFFNESS = 1e4

# Catchment gradient motion
GRADIENT_SCALE = 0.5
GRADIENT_ENERGY = 5e-4
GRADIENT_DT = 1.0
GRADIENT_MAX_DELTA = 0.02      # per-point displacement clamp per step
VERLET_DAMPING = 0.99

# ---------------------------------------------------------------------
# CONTROL LOOP
# ---------------------------------------------------------------------

RETRIANGULATE_EVERY = 5        # physical steps between rebuilds
BRAIN_EVERY = 1                # physical steps per Brain cycle
DEFAULT_CENTERING = "circumcenter"
