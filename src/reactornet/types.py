# src/reactornet/types.py
"""Shared type definitions for reactornet.

This module holds the numeric array aliases, the closed set of reactor kinds,
the evaluator outcome used at the integrator callback boundary, and the
observable network lifecycle states.
"""

from __future__ import annotations

from enum import Enum
from typing import Final, TypeAlias

import numpy as np
from numpy.typing import NDArray

# -----------------------------------------------------------------------------
# Core numeric aliases
# -----------------------------------------------------------------------------

Float64Array: TypeAlias = NDArray[np.float64]

# Generic floating vector used by reactor and evaluator interfaces.
FloatArray: TypeAlias = NDArray[np.floating]

_NOT_1D_MSG: Final[str] = "{name} must be a 1D array"

# -----------------------------------------------------------------------------
# Tagged variants
# -----------------------------------------------------------------------------


class ReactorKind(Enum):
    """Closed set of handle kinds a network can hold."""

    WALL = "wall"
    REACTOR = "reactor"
    FLOW_REACTOR = "flow-reactor"

    @property
    def contributes(self) -> bool:
        """Return True if handles of this kind contribute equations."""
        return self is not ReactorKind.WALL

    @property
    def is_flow(self) -> bool:
        """Return True for the steady-flow variant."""
        return self is ReactorKind.FLOW_REACTOR


class EvalStatus(Enum):
    """Outcome of one evaluator call, consumed by the integrator's driving loop."""

    SUCCESS = "success"
    FAILURE = "failure"

    def __bool__(self) -> bool:
        return self is EvalStatus.SUCCESS


class NetworkState(Enum):
    """Lifecycle of a reactor network."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    FAILED = "failed"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def as_float64_1d(x: object, *, name: str = "array") -> Float64Array:
    """Convert input to contiguous float64 1D array.

    Args:
        x: Input array-like.
        name: Name used in error messages.

    Returns:
        Contiguous float64 1D array.

    Raises:
        ValueError: If input cannot be represented as a 1D array.
    """
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(_NOT_1D_MSG.format(name=name))
    return np.ascontiguousarray(arr)
