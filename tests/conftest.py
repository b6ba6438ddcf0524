"""Global pytest configuration and shared fixtures for reactornet."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from reactornet.reactor import FlowReactor, FunctionReactor, ReactorBase

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


# -----------------------------------------------------------------------------
# Toy reactors
# -----------------------------------------------------------------------------


class RecordingReactor(ReactorBase):
    """Reactor with constant derivatives that records every eval_eqs call."""

    def __init__(
        self,
        n: int,
        *,
        fill: float = 0.0,
        n_params: int = 0,
        components: Sequence[str] | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(np.full(n, fill), components=components, name=name)
        self._n_params = n_params
        self.calls: list[tuple[float, FloatArray, FloatArray]] = []
        self.initialized_at: list[float] = []

    @property
    def n_sens_params(self) -> int:
        return self._n_params

    def initialize(self, t0: float) -> None:
        super().initialize(t0)
        self.initialized_at.append(float(t0))

    def eval_eqs(
        self,
        t: float,
        y: FloatArray,
        ydot: FloatArray,
        params: FloatArray,
    ) -> None:
        self.calls.append((float(t), np.array(y), np.array(params)))
        ydot[:] = float(len(self.calls))


def make_decay_reactor(
    rates: Sequence[float],
    y0: Sequence[float] | None = None,
    *,
    components: Sequence[str] | None = None,
    name: str | None = None,
    flow: bool = False,
) -> FunctionReactor:
    """Return a reactor with independent first-order decays dy_i/dt = -k_i y_i."""
    k = np.asarray(rates, dtype=float)
    init = np.ones_like(k) if y0 is None else np.asarray(y0, dtype=float)

    def rhs(_t: float, y: FloatArray, _p: FloatArray) -> FloatArray:
        return -k * y

    cls = FlowReactor if flow else FunctionReactor
    return cls(rhs, init, components=components, name=name)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def decay_reactor() -> Callable[..., FunctionReactor]:
    """Factory fixture for first-order decay reactors."""
    return make_decay_reactor


@pytest.fixture
def recording_reactor() -> Callable[..., RecordingReactor]:
    """Factory fixture for RecordingReactor."""
    return RecordingReactor
