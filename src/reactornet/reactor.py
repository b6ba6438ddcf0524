# src/reactornet/reactor.py
"""Reactor capability contract and lightweight reactor implementations.

A reactor is a lumped control volume that exposes a local state vector and its
own time-derivative evaluation. The network never owns reactors; it only
queries sizes, scatters state into them and asks them for derivatives through
the methods of :class:`ReactorLike`.

The concrete classes here carry no physics. They host a user-supplied
right-hand side so networks can be assembled without a thermochemistry
backend:

- :class:`FunctionReactor`: ordinary reactor driven by ``rhs(t, y, params)``.
- :class:`FlowReactor`: the steady-flow variant; must be the only handle in a
  network.
- :class:`Wall`: placeholder handle that never contributes equations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Final, Protocol, runtime_checkable

import numpy as np

from .errors import EvaluationError, raise_length_mismatch, raise_unknown_component
from .types import Float64Array, FloatArray, ReactorKind, as_float64_1d

_RHS_SHAPE_MSG: Final[str] = "Reactor '{name}' rhs returned shape {actual}; expected {expected}"
_COMPONENTS_LEN_MSG: Final[str] = (
    "components has {actual} names but the initial state has {expected} entries"
)
_DUPLICATE_COMPONENT_MSG: Final[str] = "Duplicate component names: {names}"

LocalRHS = Callable[[float, Float64Array, Float64Array], FloatArray]


# =============================================================================
# Capability protocols
# =============================================================================


@runtime_checkable
class NetworkHandle(Protocol):
    """Anything that can be registered with a network."""

    @property
    def kind(self) -> ReactorKind:
        """Return the tagged variant of this handle."""
        ...


@runtime_checkable
class ReactorLike(NetworkHandle, Protocol):
    """Local ODE contribution of one control volume."""

    @property
    def neq(self) -> int:
        """Return the length of the local state vector."""
        ...

    @property
    def n_sens_params(self) -> int:
        """Return the number of sensitivity parameters owned by this reactor."""
        ...

    def initialize(self, t0: float) -> None:
        """Prepare the reactor for integration starting at t0."""
        ...

    def eval_eqs(
        self,
        t: float,
        y: Float64Array,
        ydot: Float64Array,
        params: Float64Array,
    ) -> None:
        """Write the local time derivative of y into ydot."""
        ...

    def update_state(self, y: Float64Array) -> None:
        """Set the reactor-visible state from a local state vector."""
        ...

    def get_initial_conditions(self, t0: float, y: Float64Array) -> None:
        """Write the local initial state into y."""
        ...

    def component_index(self, name: str) -> int:
        """Return the local index of a named component."""
        ...


# =============================================================================
# Implementations
# =============================================================================


class ReactorBase(ABC):
    """Reactor that owns a named local state vector.

    Subclasses only implement :meth:`eval_eqs`. The state set through
    :meth:`update_state` (or :meth:`set_state`) is what
    :meth:`get_initial_conditions` reports, so reinitializing a network
    continues from the latest reactor state.
    """

    kind: ReactorKind = ReactorKind.REACTOR

    def __init__(
        self,
        initial_state: object,
        *,
        components: Sequence[str] | None = None,
        name: str | None = None,
    ) -> None:
        """
        Initialize ReactorBase.

        Args:
            initial_state: 1D array-like initial local state.
            components: Optional component names, one per state entry. Defaults
                to ``("y0", "y1", ...)``.
            name: Optional label used in messages.

        Raises:
            ValueError: If component names are inconsistent with the state.
        """
        self._state = as_float64_1d(initial_state, name="initial_state").copy()
        n = int(self._state.size)

        if components is None:
            names = tuple(f"y{i}" for i in range(n))
        else:
            names = tuple(str(c) for c in components)
            if len(names) != n:
                raise ValueError(
                    _COMPONENTS_LEN_MSG.format(actual=len(names), expected=n)
                )
        if len(set(names)) != len(names):
            dupes = sorted({c for c in names if names.count(c) > 1})
            raise ValueError(_DUPLICATE_COMPONENT_MSG.format(names=dupes))

        self._components = names
        self._index = {c: i for i, c in enumerate(names)}
        self.name = name if name is not None else type(self).__name__
        self.t0: float | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, neq={self.neq})"

    @property
    def neq(self) -> int:
        """Length of the local state vector."""
        return int(self._state.size)

    @property
    def n_sens_params(self) -> int:
        """Number of sensitivity parameters (none by default)."""
        return 0

    @property
    def component_names(self) -> tuple[str, ...]:
        """Component names in local index order."""
        return self._components

    @property
    def state(self) -> Float64Array:
        """Copy of the current reactor-visible state."""
        return self._state.copy()

    def set_state(self, values: object) -> None:
        """Overwrite the reactor state outside of an integration.

        Args:
            values: New 1D local state.
        """
        self.update_state(as_float64_1d(values, name="values"))

    def initialize(self, t0: float) -> None:
        """Record the start time of the next integration."""
        self.t0 = float(t0)

    def update_state(self, y: Float64Array) -> None:
        """Copy a local state vector into the reactor.

        Args:
            y: Local state slice, length neq.

        Raises:
            SetupError: If y has the wrong length.
        """
        if y.size != self._state.size:
            raise_length_mismatch(name="y", expected=self.neq, got=int(y.size))
        np.copyto(self._state, y)

    def get_initial_conditions(self, t0: float, y: Float64Array) -> None:  # noqa: ARG002
        """Write the current state into y.

        Args:
            t0: Start time (unused; state is time-independent here).
            y: Output slice, length neq.

        Raises:
            SetupError: If y has the wrong length.
        """
        if y.size != self._state.size:
            raise_length_mismatch(name="y", expected=self.neq, got=int(y.size))
        np.copyto(y, self._state)

    def component_index(self, name: str) -> int:
        """Return the local index of a named component.

        Raises:
            SetupError: If the name is not a component of this reactor.
        """
        if name not in self._index:
            raise_unknown_component(name, self.name)
        return self._index[name]

    @abstractmethod
    def eval_eqs(
        self,
        t: float,
        y: Float64Array,
        ydot: Float64Array,
        params: Float64Array,
    ) -> None:
        """Write the local time derivative of y into ydot."""


class FunctionReactor(ReactorBase):
    """Reactor whose derivative is a user-supplied callable.

    The callable has the signature ``rhs(t, y, params) -> dydt`` where ``y`` is
    the local state slice and ``params`` the reactor's sensitivity parameter
    slice (multipliers, 1.0 by default).
    """

    def __init__(
        self,
        rhs: LocalRHS,
        initial_state: object,
        *,
        components: Sequence[str] | None = None,
        sensitivity_parameters: Sequence[str] = (),
        name: str | None = None,
    ) -> None:
        """
        Initialize FunctionReactor.

        Args:
            rhs: Local right-hand side ``rhs(t, y, params) -> dydt``.
            initial_state: 1D array-like initial local state.
            components: Optional component names.
            sensitivity_parameters: Names of the parameters this reactor reads
                from its ``params`` slice.
            name: Optional label used in messages.
        """
        super().__init__(initial_state, components=components, name=name)
        self._rhs = rhs
        self.sensitivity_parameters = tuple(str(p) for p in sensitivity_parameters)

    @property
    def n_sens_params(self) -> int:
        """Number of named sensitivity parameters."""
        return len(self.sensitivity_parameters)

    def eval_eqs(
        self,
        t: float,
        y: Float64Array,
        ydot: Float64Array,
        params: Float64Array,
    ) -> None:
        """Evaluate the callable and write its result into ydot.

        Raises:
            EvaluationError: If the callable returns a result of the wrong shape.
        """
        f = np.asarray(self._rhs(float(t), y, params), dtype=np.float64)
        if f.shape != ydot.shape:
            raise EvaluationError(
                _RHS_SHAPE_MSG.format(name=self.name, actual=f.shape, expected=ydot.shape)
            )
        np.copyto(ydot, f)


class FlowReactor(FunctionReactor):
    """Steady-flow reactor; ``t`` is the residence-time coordinate."""

    kind = ReactorKind.FLOW_REACTOR


class Wall:
    """Placeholder handle (walls, reservoirs) that contributes no equations."""

    kind = ReactorKind.WALL

    def __init__(self, name: str | None = None) -> None:
        self.name = name if name is not None else "Wall"

    def __repr__(self) -> str:
        return f"Wall(name={self.name!r})"
