"""reactornet: coupled reactor networks integrated as one stiff ODE system."""

from __future__ import annotations

import logging

from .errors import (
    EvaluationError,
    IntegrationAbortedError,
    IntegrationFailure,
    NetworkStateError,
    ReactorNetError,
    SetupError,
    UnsupportedOptionError,
)
from .integrator import Evaluator, Integrator, StiffIntegrator
from .network import ReactorNet, ReactorNetOptions
from .reactor import (
    FlowReactor,
    FunctionReactor,
    NetworkHandle,
    ReactorBase,
    ReactorLike,
    Wall,
)
from .types import EvalStatus, NetworkState, ReactorKind

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EvalStatus",
    "EvaluationError",
    "Evaluator",
    "FlowReactor",
    "FunctionReactor",
    "IntegrationAbortedError",
    "IntegrationFailure",
    "Integrator",
    "NetworkHandle",
    "NetworkState",
    "NetworkStateError",
    "ReactorBase",
    "ReactorKind",
    "ReactorLike",
    "ReactorNet",
    "ReactorNetError",
    "ReactorNetOptions",
    "SetupError",
    "StiffIntegrator",
    "UnsupportedOptionError",
    "Wall",
]

__version__ = "0.1.0"
