# src/reactornet/network.py
"""Reactor network driver: couples reactors into one stiff ODE system.

The network concatenates the local state vectors of its registered reactors,
in registration order, into a single global state vector and drives a stiff
integrator over it. Reactor ``i`` owns the slice
``[offsets[i], offsets[i] + sizes[i])`` of every global buffer (state,
derivative, absolute tolerances); its sensitivity parameters own the slice
``[sens_param_offsets[i], sens_param_offsets[i] + sens_param_counts[i])`` of
the parameter vector.

Lifecycle:
    UNINITIALIZED --initialize()--> INITIALIZED --integration failure--> FAILED

    - advance()/step() initialize lazily from UNINITIALIZED.
    - Registering a reactor or changing tolerances returns the network to
      UNINITIALIZED; the offset tables are rebuilt by the next initialize().
    - FAILED requires an explicit initialize()/reinitialize().

Callback boundary:
    eval() is invoked by the integrator. It never raises: reactor failures are
    logged, recorded in ``last_eval_error`` and reported as
    ``EvalStatus.FAILURE``. The integrator then aborts the run with
    IntegrationAbortedError.

Failures:
    Any IntegrationFailure raised by advance()/step() (an aborted evaluation,
    the max_steps limit, a stepper failure, a backwards target) moves the
    network to FAILED and resets every reactor to the state at the network
    time before the failure is re-raised.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, cast

import numpy as np

from .errors import (
    IntegrationFailure,
    NetworkStateError,
    SetupError,
    raise_flow_reactor_not_alone,
    raise_length_mismatch,
)
from .integrator import DEFAULT_MAX_STEPS, StiffIntegrator
from .types import EvalStatus, Float64Array, NetworkState

if TYPE_CHECKING:
    from .integrator import Integrator, MethodName
    from .reactor import NetworkHandle, ReactorLike

logger = logging.getLogger(__name__)

# =============================================================================
# Errors / messages
# =============================================================================

_REENTRANT_MSG: Final[str] = (
    "{op}() cannot be called while the network is integrating "
    "(for example from inside a reactor's eval_eqs)"
)
_FAILED_MSG: Final[str] = (
    "The previous integration failed; "
    "call initialize() or reinitialize() before {op}()"
)
_REACTOR_INDEX_MSG: Final[str] = "Reactor index {index} out of range for {n} reactors"
_SENS_INDEX_MSG: Final[str] = (
    "Sensitivity parameter {local} out of range for reactor {reactor} "
    "with {n} parameters"
)
_SENS_GLOBAL_INDEX_MSG: Final[str] = (
    "Sensitivity parameter index {index} out of range for {n} parameters"
)
_NOT_A_HANDLE_MSG: Final[str] = "Object {obj!r} does not expose a ReactorKind 'kind'"
_NEGATIVE_TOL_MSG: Final[str] = "{name} must be non-negative; got {value}"


# =============================================================================
# Configuration dataclasses
# =============================================================================


@dataclass(slots=True, frozen=True)
class ReactorNetOptions:
    """Tolerances and limits applied to a ReactorNet.

    Attributes:
        method: Integrator method name.
        rtol: Relative tolerance for the state equations.
        atol: Scalar absolute tolerance, expanded to one entry per equation.
        rtol_sens: Relative tolerance for sensitivity equations.
        atol_sens: Absolute tolerance for sensitivity equations.
        max_step: Maximum internal step; None derives it from the first
            requested interval.
        max_steps: Maximum internal steps per advance() call.
        verbose: Log initialization diagnostics at INFO level.
    """

    method: MethodName = "bdf"
    rtol: float = 1e-9
    atol: float = 1e-15
    rtol_sens: float = 1e-4
    atol_sens: float = 1e-4
    max_step: float | None = None
    max_steps: int = DEFAULT_MAX_STEPS
    verbose: bool = False


# =============================================================================
# ReactorNet
# =============================================================================


class ReactorNet:
    """A network of coupled reactors integrated as one ODE system."""

    def __init__(
        self,
        reactors: Iterable[NetworkHandle] = (),
        *,
        options: ReactorNetOptions | None = None,
        integrator: Integrator | None = None,
    ) -> None:
        """
        Initialize ReactorNet.

        Args:
            reactors: Handles to register, in order. The network borrows them.
            options: Tolerances and limits; defaults to ReactorNetOptions().
            integrator: Optional integrator to drive instead of a new
                StiffIntegrator. The network configures it either way.
        """
        opts = options or ReactorNetOptions()

        self._handles: list[NetworkHandle] = []
        self._reactors: list[ReactorLike] = []

        self._time = 0.0
        self._state = NetworkState.UNINITIALIZED
        self._integrating = False
        self.last_eval_error: BaseException | None = None

        # Bookkeeping tables, rebuilt by initialize()
        self._sizes: list[int] = []
        self._offsets: list[int] = []
        self._nparams: list[int] = []
        self._param_offsets: list[int] = []
        self._neq = 0
        self._ntotpar = 0
        self._atol_vec: Float64Array = np.zeros(0, dtype=np.float64)

        self._rtol = float(opts.rtol)
        self._atol = float(opts.atol)
        self._rtol_sens = float(opts.rtol_sens)
        self._atol_sens = float(opts.atol_sens)
        self._max_step = opts.max_step
        self._max_steps = int(opts.max_steps)
        self.verbose = bool(opts.verbose)

        # Stiff chemistry: implicit BDF, dense finite-difference Jacobian, Newton.
        self._integ: Integrator = integrator if integrator is not None else StiffIntegrator()
        self._integ.set_method(opts.method)
        self._integ.set_problem_type("dense-nojac")
        self._integ.set_iterator("newton")

        for handle in reactors:
            self.add_reactor(handle)

    def __repr__(self) -> str:
        return (
            f"ReactorNet(handles={len(self._handles)}, state={self._state.value}, "
            f"t={self._time:g})"
        )

    # ------------------------------------------------------------------
    # Registration / state machine
    # ------------------------------------------------------------------

    def _guard(self, op: str) -> None:
        if self._integrating:
            raise NetworkStateError(_REENTRANT_MSG.format(op=op))

    def _invalidate(self) -> None:
        if self._state is NetworkState.INITIALIZED:
            self._state = NetworkState.UNINITIALIZED

    def add_reactor(self, reactor: NetworkHandle) -> None:
        """Register a handle; the offset tables are rebuilt on next initialize.

        Raises:
            TypeError: If reactor does not expose a ``kind``.
            NetworkStateError: If called during an integration.
        """
        self._guard("add_reactor")
        if not hasattr(reactor, "kind"):
            raise TypeError(_NOT_A_HANDLE_MSG.format(obj=reactor))
        self._handles.append(reactor)
        self._invalidate()

    @property
    def handles(self) -> tuple[NetworkHandle, ...]:
        """All registered handles, including placeholders."""
        return tuple(self._handles)

    @property
    def reactors(self) -> tuple[ReactorLike, ...]:
        """Qualifying reactors found by the last initialize(), in order."""
        return tuple(self._reactors)

    @property
    def n_reactors(self) -> int:
        """Number of qualifying reactors found by the last initialize()."""
        return len(self._reactors)

    @property
    def state(self) -> NetworkState:
        """Current lifecycle state."""
        return self._state

    @property
    def initialized(self) -> bool:
        """True when the offset tables and integrator are ready."""
        return self._state is NetworkState.INITIALIZED

    @property
    def time(self) -> float:
        """Current simulation time."""
        return self._time

    @property
    def integrator(self) -> Integrator:
        """The integrator owned by this network."""
        return self._integ

    # ------------------------------------------------------------------
    # Tolerances / limits
    # ------------------------------------------------------------------

    @property
    def rtol(self) -> float:
        """Relative tolerance."""
        return self._rtol

    @property
    def atol(self) -> float:
        """Scalar absolute tolerance."""
        return self._atol

    @property
    def rtol_sens(self) -> float:
        """Relative tolerance for sensitivity equations."""
        return self._rtol_sens

    @property
    def atol_sens(self) -> float:
        """Absolute tolerance for sensitivity equations."""
        return self._atol_sens

    @property
    def max_step(self) -> float | None:
        """Maximum internal step, or None if not configured yet."""
        return self._max_step

    @property
    def max_steps(self) -> int:
        """Maximum internal steps per advance() call."""
        return self._max_steps

    @staticmethod
    def _check_tol(name: str, value: float) -> float:
        value_f = float(value)
        if value_f < 0.0:
            raise SetupError(_NEGATIVE_TOL_MSG.format(name=name, value=value_f))
        return value_f

    def set_tolerances(self, rtol: float | None = None, atol: float | None = None) -> None:
        """Set state tolerances; None leaves a value unchanged.

        Raises:
            SetupError: If a tolerance is negative.
        """
        self._guard("set_tolerances")
        if rtol is not None:
            self._rtol = self._check_tol("rtol", rtol)
        if atol is not None:
            self._atol = self._check_tol("atol", atol)
        self._invalidate()

    def set_sensitivity_tolerances(
        self,
        rtol: float | None = None,
        atol: float | None = None,
    ) -> None:
        """Set sensitivity tolerances; None leaves a value unchanged.

        Raises:
            SetupError: If a tolerance is negative.
        """
        self._guard("set_sensitivity_tolerances")
        if rtol is not None:
            self._rtol_sens = self._check_tol("rtol_sens", rtol)
        if atol is not None:
            self._atol_sens = self._check_tol("atol_sens", atol)
        self._invalidate()

    def set_max_time_step(self, value: float | None) -> None:
        """Set the maximum internal step; None restores first-interval derivation."""
        self._guard("set_max_time_step")
        self._max_step = None if value is None else float(value)
        self._invalidate()

    def set_max_steps(self, max_steps: int) -> None:
        """Set the maximum number of internal steps per advance() call."""
        self._guard("set_max_steps")
        self._max_steps = int(max_steps)
        self._invalidate()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self, t0: float | None = None) -> None:
        """Build the offset tables and hand the network to the integrator.

        Args:
            t0: Initial time; defaults to the current network time.

        Raises:
            SetupError: If a flow reactor shares the network with other
                handles, or the integrator rejects the configuration.
            NetworkStateError: If called during an integration.
        """
        self._guard("initialize")
        t_start = self._time if t0 is None else float(t0)

        self._state = NetworkState.UNINITIALIZED
        self._reactors = []
        self._sizes = []
        self._offsets = []
        self._nparams = []
        self._param_offsets = []
        self._neq = 0
        self._ntotpar = 0
        self.last_eval_error = None

        qualifying = [h for h in self._handles if h.kind.contributes]
        if len(self._handles) > 1 and any(h.kind.is_flow for h in qualifying):
            raise_flow_reactor_not_alone(len(self._handles))

        if self.verbose:
            logger.info("Initializing reactor network.")

        for n, handle in enumerate(qualifying):
            reactor = cast("ReactorLike", handle)
            reactor.initialize(t_start)
            nv = int(reactor.neq)
            npar = int(reactor.n_sens_params)

            self._reactors.append(reactor)
            self._offsets.append(self._neq)
            self._sizes.append(nv)
            self._param_offsets.append(self._ntotpar)
            self._nparams.append(npar)
            self._neq += nv
            self._ntotpar += npar

            if self.verbose:
                logger.info("Reactor %d: %d variables.", n, nv)
                logger.info("            %d sensitivity params.", npar)

        self._atol_vec = np.full(self._neq, self._atol, dtype=np.float64)
        self._integ.set_tolerances(self._rtol, self._atol_vec)
        self._integ.set_sensitivity_tolerances(self._rtol_sens, self._atol_sens)
        self._integ.set_max_step_size(self._max_step)
        self._integ.set_max_steps(self._max_steps)

        if self.verbose:
            logger.info("Number of equations: %d", self._neq)
            max_step = -1.0 if self._max_step is None else self._max_step
            logger.info("Maximum time step:   %14.6g", max_step)
            logger.info("Tolerances: rtol=%g atol=%g", self._rtol, self._atol)

        self._integ.initialize(t_start, self)
        self._time = t_start
        self._state = NetworkState.INITIALIZED

    def reinitialize(self) -> None:
        """Initialize again from the current time and reactor states."""
        self.initialize(self._time)

    def _prepare(self, time: float, op: str) -> None:
        """Run the lazy initialization shared by advance() and step()."""
        self._guard(op)
        if self._state is NetworkState.FAILED:
            raise NetworkStateError(_FAILED_MSG.format(op=op))
        if self._state is NetworkState.UNINITIALIZED:
            interval = float(time) - self._time
            if self._max_step is None and interval > 0.0:
                logger.debug("Deriving max step %g from first interval", interval)
                self._max_step = interval
            self.initialize(self._time)

    def _fail(self, accepted: Float64Array) -> None:
        """Enter FAILED with the reactors holding the state at the network time.

        Evaluations scatter trial states into the reactors, so after a failed
        run they must be reset to the last accepted global state.
        """
        self._state = NetworkState.FAILED
        self.update_state(accepted)

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    def advance(self, time: float) -> None:
        """Integrate to the absolute time ``time`` and update reactor states.

        Raises:
            SetupError: If lazy initialization fails.
            NetworkStateError: If the network is FAILED or already integrating.
            IntegrationFailure: If the integrator cannot reach ``time``; the
                network is then FAILED and the reactors hold the state at the
                previous network time.
            IntegrationAbortedError: If a reactor evaluation failed.
        """
        self._prepare(time, "advance")
        accepted = np.array(self._integ.solution(), dtype=np.float64)
        self._integrating = True
        try:
            self._integ.integrate(float(time))
        except IntegrationFailure:
            self._fail(accepted)
            raise
        finally:
            self._integrating = False
        self._time = float(time)
        self.update_state(self._integ.solution())

    def step(self, time: float) -> float:
        """Take one adaptive integrator step toward ``time``.

        Returns:
            The time actually reached (never greater than ``time``).

        Raises:
            SetupError: If lazy initialization fails.
            NetworkStateError: If the network is FAILED or already integrating.
            IntegrationFailure: If the integrator step fails; handled as in
                advance().
            IntegrationAbortedError: If a reactor evaluation failed.
        """
        self._prepare(time, "step")
        accepted = np.array(self._integ.solution(), dtype=np.float64)
        self._integrating = True
        try:
            reached = self._integ.step(float(time))
        except IntegrationFailure:
            self._fail(accepted)
            raise
        finally:
            self._integrating = False
        self._time = float(reached)
        self.update_state(self._integ.solution())
        return self._time

    # ------------------------------------------------------------------
    # Evaluator capability
    # ------------------------------------------------------------------

    @property
    def neq(self) -> int:
        """Total number of equations."""
        return self._neq

    @property
    def n_sens_params(self) -> int:
        """Total number of sensitivity parameters."""
        return self._ntotpar

    def eval(
        self,
        t: float,
        y: Float64Array,
        ydot: Float64Array,
        params: Float64Array,
    ) -> EvalStatus:
        """Evaluate the global right-hand side into ydot.

        Args:
            t: Time.
            y: Global state, length neq.
            ydot: Global derivative buffer, written in place.
            params: Global sensitivity parameters, length n_sens_params.

        Returns:
            EvalStatus.SUCCESS, or EvalStatus.FAILURE after logging and
            recording the error raised by a reactor.
        """
        try:
            self.update_state(y)
            for n, reactor in enumerate(self._reactors):
                ys = slice(self._offsets[n], self._offsets[n] + self._sizes[n])
                ps = slice(self._param_offsets[n], self._param_offsets[n] + self._nparams[n])
                reactor.eval_eqs(t, y[ys], ydot[ys], params[ps])
        except Exception as exc:  # noqa: BLE001
            self.last_eval_error = exc
            logger.exception("Reactor evaluation failed at t=%g. Terminating execution.", t)
            return EvalStatus.FAILURE
        return EvalStatus.SUCCESS

    def update_state(self, y: Float64Array) -> None:
        """Scatter a global state vector into the reactors.

        Raises:
            SetupError: If y does not have length neq.
        """
        if y.size != self._neq:
            raise_length_mismatch(name="y", expected=self._neq, got=int(y.size))
        for n, reactor in enumerate(self._reactors):
            reactor.update_state(y[self._offsets[n] : self._offsets[n] + self._sizes[n]])

    def get_initial_conditions(self, t0: float, y: Float64Array) -> None:
        """Gather every reactor's initial state into y.

        Raises:
            SetupError: If y does not have length neq.
        """
        if y.size != self._neq:
            raise_length_mismatch(name="y", expected=self._neq, got=int(y.size))
        for n, reactor in enumerate(self._reactors):
            reactor.get_initial_conditions(
                t0, y[self._offsets[n] : self._offsets[n] + self._sizes[n]]
            )

    # ------------------------------------------------------------------
    # Index bookkeeping
    # ------------------------------------------------------------------

    @property
    def sizes(self) -> tuple[int, ...]:
        """Local equation counts, parallel to reactors."""
        return tuple(self._sizes)

    @property
    def offsets(self) -> tuple[int, ...]:
        """Start of each reactor's slice in the global state vector."""
        return tuple(self._offsets)

    @property
    def sens_param_counts(self) -> tuple[int, ...]:
        """Local sensitivity parameter counts, parallel to reactors."""
        return tuple(self._nparams)

    @property
    def sens_param_offsets(self) -> tuple[int, ...]:
        """Start of each reactor's slice in the sensitivity parameter vector."""
        return tuple(self._param_offsets)

    @property
    def atol_vector(self) -> Float64Array:
        """Copy of the absolute-tolerance vector built by initialize()."""
        return self._atol_vec.copy()

    def _check_reactor_index(self, reactor: int) -> int:
        index = int(reactor)
        if not (0 <= index < len(self._reactors)):
            raise SetupError(_REACTOR_INDEX_MSG.format(index=reactor, n=len(self._reactors)))
        return index

    def reactor_slice(self, reactor: int) -> slice:
        """Slice of the global state vector owned by a reactor.

        Raises:
            SetupError: If the reactor index is out of range.
        """
        index = self._check_reactor_index(reactor)
        return slice(self._offsets[index], self._offsets[index] + self._sizes[index])

    def global_component_index(self, name: str, reactor: int) -> int:
        """Return the global state index of a component of one reactor.

        Args:
            name: Component name, resolved by the reactor itself.
            reactor: Index of the reactor in registration order.

        Returns:
            Sum of the sizes of preceding reactors plus the local index.

        Raises:
            SetupError: If the reactor index is out of range or the name is
                unknown to that reactor.
        """
        index = self._check_reactor_index(reactor)
        start = sum(self._sizes[:index])
        return start + int(self._reactors[index].component_index(name))

    def sensitivity_parameter_index(self, reactor: int, local: int) -> int:
        """Map a reactor-local sensitivity parameter to its global index.

        Raises:
            SetupError: If either index is out of range.
        """
        index = self._check_reactor_index(reactor)
        n = self._nparams[index]
        if not (0 <= int(local) < n):
            raise SetupError(_SENS_INDEX_MSG.format(local=local, reactor=reactor, n=n))
        return self._param_offsets[index] + int(local)

    def sensitivity_parameter_owner(self, index: int) -> tuple[int, int]:
        """Map a global sensitivity parameter index to (reactor, local index).

        Raises:
            SetupError: If the index is out of range.
        """
        k = int(index)
        if not (0 <= k < self._ntotpar):
            raise SetupError(_SENS_GLOBAL_INDEX_MSG.format(index=index, n=self._ntotpar))
        # Last reactor whose slice starts at or before k; empty slices sort first.
        reactor = int(np.searchsorted(self._param_offsets, k, side="right")) - 1
        return reactor, k - self._param_offsets[reactor]
