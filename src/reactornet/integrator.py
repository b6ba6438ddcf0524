# src/reactornet/integrator.py
"""Stiff ODE integrator driven through an evaluator callback.

The integrator owns the global solution buffer and the stepping configuration.
It never knows about reactors: it only sees an :class:`Evaluator`, which sizes
the problem, supplies initial conditions and evaluates the right-hand side.

Backend:
    :class:`StiffIntegrator` drives ``scipy.integrate.BDF`` (method "bdf") or
    ``scipy.integrate.Radau`` (method "radau"). Both are implicit methods using
    a Newton iteration on a dense, finite-difference Jacobian (scipy
    ``jac=None``), which is what the "dense-nojac" problem type and the
    "newton" iterator select.

Callback boundary:
    The evaluator reports failures as :class:`EvalStatus` results instead of
    raising. When a call fails, the integrator unwinds scipy's stepping loop,
    discards the stepper (its intermediate state is no longer trustworthy) and
    raises :class:`IntegrationAbortedError` chained to the evaluator's recorded
    error. The integrator must then be initialized again.

Stepping:
    - integrate(tout): take internal steps until the stepper lands on tout.
    - step(tout): take exactly one internal step, never passing tout.
    One stepper lives from initialize() until a configuration change, a
    failure or an abort. A new target rebinds its ``t_bound`` so the order,
    step size and Jacobian carry over between output times instead of
    restarting at order 1 at every checkpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final, Literal, Protocol, runtime_checkable

import numpy as np
from scipy.integrate import BDF, OdeSolver, Radau

from .errors import (
    IntegrationAbortedError,
    IntegrationFailure,
    NetworkStateError,
    SetupError,
    raise_length_mismatch,
    raise_unsupported_option,
)
from .types import EvalStatus, Float64Array, as_float64_1d

if TYPE_CHECKING:
    from .types import FloatArray

logger = logging.getLogger(__name__)

# =============================================================================
# Errors / messages
# =============================================================================

_NOT_INITIALIZED_MSG: Final[str] = "Integrator is not initialized; call initialize()"
_BACKWARDS_MSG: Final[str] = (
    "Cannot integrate backwards: requested t={tout} is before current t={t}"
)
_SOLVER_FAILED_MSG: Final[str] = "Integrator failed at t={t}: {message}"
_MAX_STEPS_MSG: Final[str] = (
    "Exceeded max_steps={max_steps} internal steps before reaching t={tout} "
    "(reached t={t})"
)
_ABORTED_MSG: Final[str] = (
    "Integration aborted at t={t}: right-hand side evaluation failed. "
    "Reinitialize before integrating again."
)
_NEGATIVE_RTOL_MSG: Final[str] = "rtol must be non-negative; got {rtol}"
_NEGATIVE_ATOL_MSG: Final[str] = "atol entries must be non-negative"
_MAX_STEPS_VALUE_MSG: Final[str] = "max_steps must be >= 1; got {max_steps}"

# =============================================================================
# Type aliases / protocols
# =============================================================================

MethodName = Literal["bdf", "radau"]
ProblemType = Literal["dense-nojac"]
IteratorName = Literal["newton"]

_METHODS: Final[dict[str, type[OdeSolver]]] = {"bdf": BDF, "radau": Radau}
_PROBLEM_TYPES: Final[tuple[str, ...]] = ("dense-nojac",)
_ITERATORS: Final[tuple[str, ...]] = ("newton",)

DEFAULT_MAX_STEPS: Final[int] = 20_000


@runtime_checkable
class Evaluator(Protocol):
    """Right-hand side provider consumed by an integrator."""

    @property
    def neq(self) -> int:
        """Return the global number of equations."""
        ...

    @property
    def n_sens_params(self) -> int:
        """Return the global number of sensitivity parameters."""
        ...

    @property
    def last_eval_error(self) -> BaseException | None:
        """Return the error recorded by the most recent failed evaluation."""
        ...

    def get_initial_conditions(self, t0: float, y: Float64Array) -> None:
        """Write the global initial state into y."""
        ...

    def eval(
        self,
        t: float,
        y: Float64Array,
        ydot: Float64Array,
        params: Float64Array,
    ) -> EvalStatus:
        """Write dy/dt into ydot and report whether evaluation succeeded."""
        ...


class Integrator(Protocol):
    """Stiff ODE stepper contract used by the reactor network."""

    def set_method(self, kind: str) -> None:
        """Select the linear multistep / implicit method."""
        ...

    def set_problem_type(self, kind: str) -> None:
        """Select the Jacobian / linear solver structure."""
        ...

    def set_iterator(self, kind: str) -> None:
        """Select the nonlinear iteration."""
        ...

    def set_tolerances(self, rtol: float, atol: object) -> None:
        """Set the relative tolerance and per-equation absolute tolerances."""
        ...

    def set_sensitivity_tolerances(self, rtol: float, atol: float) -> None:
        """Set the tolerances applied to sensitivity equations."""
        ...

    def set_max_step_size(self, value: float | None) -> None:
        """Bound the internal step size (None or <= 0 for unbounded)."""
        ...

    def set_max_steps(self, max_steps: int) -> None:
        """Bound the number of internal steps per integrate() call."""
        ...

    def initialize(self, t0: float, evaluator: Evaluator) -> None:
        """Size buffers from the evaluator and load initial conditions."""
        ...

    def integrate(self, tout: float) -> None:
        """Integrate up to exactly tout."""
        ...

    def step(self, tout: float) -> float:
        """Take one internal step not passing tout; return the time reached."""
        ...

    def solution(self) -> Float64Array:
        """Return a read-only view of the current global state."""
        ...


class _EvaluationAborted(Exception):
    """Internal signal that unwinds scipy's stepping loop after a failed eval."""


# =============================================================================
# StiffIntegrator
# =============================================================================


class StiffIntegrator:
    """scipy-backed implementation of :class:`Integrator`."""

    def __init__(self) -> None:
        """Initialize StiffIntegrator with BDF / dense-nojac / newton defaults."""
        self._method: MethodName = "bdf"
        self._problem_type: ProblemType = "dense-nojac"
        self._iterator: IteratorName = "newton"

        self._rtol = 1e-9
        self._atol: Float64Array = np.zeros(0, dtype=np.float64)
        self._rtol_sens = 1e-4
        self._atol_sens = 1e-4
        self._max_step = float("inf")
        self._max_steps = DEFAULT_MAX_STEPS

        self._evaluator: Evaluator | None = None
        self._solver: OdeSolver | None = None

        self._t = 0.0
        self._y: Float64Array = np.zeros(0, dtype=np.float64)
        self._ydot: Float64Array = np.zeros(0, dtype=np.float64)
        self._params: Float64Array = np.zeros(0, dtype=np.float64)

        self.n_evals = 0
        self.n_steps = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(kind: str) -> str:
        return str(kind).strip().lower()

    def set_method(self, kind: str) -> None:
        """Select "bdf" or "radau".

        Raises:
            UnsupportedOptionError: If kind is not a supported method.
        """
        method = self._normalize(kind)
        if method not in _METHODS:
            raise_unsupported_option("method", kind, tuple(_METHODS))
        self._method = method  # type: ignore[assignment]
        self._solver = None

    def set_problem_type(self, kind: str) -> None:
        """Select the problem type; only "dense-nojac" is available.

        Raises:
            UnsupportedOptionError: If kind is not a supported problem type.
        """
        problem = self._normalize(kind)
        if problem not in _PROBLEM_TYPES:
            raise_unsupported_option("problem type", kind, _PROBLEM_TYPES)
        self._problem_type = problem  # type: ignore[assignment]

    def set_iterator(self, kind: str) -> None:
        """Select the nonlinear iteration; only "newton" is available.

        Raises:
            UnsupportedOptionError: If kind is not a supported iterator.
        """
        iterator = self._normalize(kind)
        if iterator not in _ITERATORS:
            raise_unsupported_option("iterator", kind, _ITERATORS)
        self._iterator = iterator  # type: ignore[assignment]

    def set_tolerances(self, rtol: float, atol: object) -> None:
        """Set the relative tolerance and the absolute-tolerance vector.

        Args:
            rtol: Scalar relative tolerance.
            atol: 1D absolute tolerances, one per equation.

        Raises:
            SetupError: If a tolerance is negative.
        """
        rtol_f = float(rtol)
        if rtol_f < 0.0:
            raise SetupError(_NEGATIVE_RTOL_MSG.format(rtol=rtol_f))
        atol_arr = as_float64_1d(atol, name="atol").copy()
        if np.any(atol_arr < 0.0):
            raise SetupError(_NEGATIVE_ATOL_MSG)
        self._rtol = rtol_f
        self._atol = atol_arr
        self._solver = None

    def set_sensitivity_tolerances(self, rtol: float, atol: float) -> None:
        """Record tolerances for sensitivity equations.

        The scipy steppers do not integrate sensitivity equations; the values
        are kept so the configuration round-trips through the integrator.
        """
        self._rtol_sens = float(rtol)
        self._atol_sens = float(atol)

    def set_max_step_size(self, value: float | None) -> None:
        """Bound the internal step size; None or a non-positive value removes the bound."""
        if value is None or not np.isfinite(value) or value <= 0.0:
            self._max_step = float("inf")
        else:
            self._max_step = float(value)
        self._solver = None

    def set_max_steps(self, max_steps: int) -> None:
        """Bound the number of internal steps taken by one integrate() call.

        Raises:
            SetupError: If max_steps < 1.
        """
        if int(max_steps) < 1:
            raise SetupError(_MAX_STEPS_VALUE_MSG.format(max_steps=max_steps))
        self._max_steps = int(max_steps)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def method(self) -> MethodName:
        """Selected method name."""
        return self._method

    @property
    def problem_type(self) -> ProblemType:
        """Selected problem type."""
        return self._problem_type

    @property
    def iterator(self) -> IteratorName:
        """Selected nonlinear iteration."""
        return self._iterator

    @property
    def rtol(self) -> float:
        """Relative tolerance."""
        return self._rtol

    @property
    def atol(self) -> Float64Array:
        """Copy of the absolute-tolerance vector."""
        return self._atol.copy()

    @property
    def sensitivity_tolerances(self) -> tuple[float, float]:
        """(rtol, atol) for sensitivity equations."""
        return self._rtol_sens, self._atol_sens

    @property
    def max_step(self) -> float:
        """Internal step bound (inf when unbounded)."""
        return self._max_step

    @property
    def max_steps(self) -> int:
        """Internal step limit per integrate() call."""
        return self._max_steps

    @property
    def initialized(self) -> bool:
        """True between a successful initialize() and an abort."""
        return self._evaluator is not None

    @property
    def time(self) -> float:
        """Time of the current solution."""
        return self._t

    @property
    def n_equations(self) -> int:
        """Length of the global solution vector."""
        return int(self._y.size)

    @property
    def parameters(self) -> Float64Array:
        """Sensitivity parameter vector passed to every evaluation (writable)."""
        return self._params

    def solution(self) -> Float64Array:
        """Return a read-only view of the current global state."""
        view = self._y.view()
        view.flags.writeable = False
        return view

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, t0: float, evaluator: Evaluator) -> None:
        """Size buffers from the evaluator and load its initial conditions.

        Args:
            t0: Initial time.
            evaluator: Right-hand side provider.

        Raises:
            SetupError: If the tolerance vector length does not match evaluator.neq.
        """
        n = int(evaluator.neq)
        if self._atol.size != n:
            raise_length_mismatch(name="atol", expected=n, got=int(self._atol.size))

        y0 = np.zeros(n, dtype=np.float64)
        evaluator.get_initial_conditions(float(t0), y0)

        self._t = float(t0)
        self._y = y0
        self._ydot = np.zeros(n, dtype=np.float64)
        self._params = np.ones(int(evaluator.n_sens_params), dtype=np.float64)
        self._solver = None
        self.n_evals = 0
        self.n_steps = 0
        self._evaluator = evaluator

    def _require_evaluator(self) -> Evaluator:
        if self._evaluator is None:
            raise NetworkStateError(_NOT_INITIALIZED_MSG)
        return self._evaluator

    def _rhs(self, t: float, y: FloatArray) -> Float64Array:
        """scipy callback: consult the evaluator and unwind on failure."""
        evaluator = self._require_evaluator()
        self.n_evals += 1
        status = evaluator.eval(float(t), np.asarray(y, dtype=np.float64), self._ydot, self._params)
        if status is not EvalStatus.SUCCESS:
            raise _EvaluationAborted
        return self._ydot.copy()

    def _discard_after_abort(self) -> BaseException | None:
        """Drop the stepper and evaluator; return the evaluator's recorded error."""
        evaluator = self._evaluator
        cause = evaluator.last_eval_error if evaluator is not None else None
        self._solver = None
        self._evaluator = None
        return cause

    def _ensure_solver(self, tout: float) -> OdeSolver:
        solver = self._solver
        if solver is not None and solver.status != "failed" and solver.t == self._t:
            if solver.t_bound != tout:
                # Rebind the live stepper; its order, step size and Jacobian carry over.
                solver.t_bound = tout
                solver.status = "running"
            return solver

        solver_cls = _METHODS[self._method]
        logger.debug(
            "Starting %s stepper at t=%g toward t=%g (n=%d)",
            self._method,
            self._t,
            tout,
            self._y.size,
        )
        try:
            solver = solver_cls(
                self._rhs,
                self._t,
                self._y.copy(),
                tout,
                max_step=self._max_step,
                rtol=self._rtol,
                atol=self._atol,
            )
        except _EvaluationAborted:
            cause = self._discard_after_abort()
            raise IntegrationAbortedError(_ABORTED_MSG.format(t=self._t)) from cause
        self._solver = solver
        return solver

    def _take_step(self, solver: OdeSolver) -> None:
        """Advance the stepper once and publish its state.

        Raises:
            IntegrationFailure: If the stepper reports failure.
        """
        try:
            message = solver.step()
        except _EvaluationAborted:
            cause = self._discard_after_abort()
            raise IntegrationAbortedError(_ABORTED_MSG.format(t=self._t)) from cause

        if solver.status == "failed":
            self._solver = None
            raise IntegrationFailure(_SOLVER_FAILED_MSG.format(t=self._t, message=message))

        self._t = float(solver.t)
        self._y = np.array(solver.y, dtype=np.float64)
        self.n_steps += 1

    def _check_target(self, tout: float) -> None:
        if tout < self._t:
            raise IntegrationFailure(_BACKWARDS_MSG.format(tout=tout, t=self._t))

    def integrate(self, tout: float) -> None:
        """Integrate up to exactly tout.

        Raises:
            NetworkStateError: If the integrator is not initialized.
            IntegrationFailure: If tout is in the past, the stepper fails or
                max_steps is exceeded.
            IntegrationAbortedError: If an evaluation failed.
        """
        self._require_evaluator()
        tout = float(tout)
        self._check_target(tout)
        if tout == self._t:
            return
        if self._y.size == 0:
            self._t = tout
            return

        solver = self._ensure_solver(tout)
        n_taken = 0
        while solver.status == "running":
            if n_taken >= self._max_steps:
                raise IntegrationFailure(
                    _MAX_STEPS_MSG.format(max_steps=self._max_steps, tout=tout, t=self._t)
                )
            self._take_step(solver)
            n_taken += 1

        self._t = tout

    def step(self, tout: float) -> float:
        """Take one internal step bounded by tout.

        Returns:
            Time reached, never greater than tout.

        Raises:
            NetworkStateError: If the integrator is not initialized.
            IntegrationFailure: If tout is in the past or the stepper fails.
            IntegrationAbortedError: If an evaluation failed.
        """
        self._require_evaluator()
        tout = float(tout)
        self._check_target(tout)
        if tout == self._t:
            return self._t
        if self._y.size == 0:
            self._t = tout
            return self._t

        solver = self._ensure_solver(tout)
        self._take_step(solver)
        if solver.status == "finished":
            self._t = tout
        return self._t
