"""Evaluator-callback and gather/scatter tests for ReactorNet.

These tests call eval(), update_state() and get_initial_conditions() directly,
the way the integrator does, without integrating.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pytest

from reactornet.errors import EvaluationError, SetupError
from reactornet.network import ReactorNet
from reactornet.reactor import FunctionReactor
from reactornet.types import EvalStatus

if TYPE_CHECKING:
    from collections.abc import Callable

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _three_reactor_net(
    recording_reactor: Callable[..., object],
) -> tuple[ReactorNet, list[object]]:
    reactors = [
        recording_reactor(2, n_params=1),
        recording_reactor(3, n_params=0),
        recording_reactor(1, n_params=2),
    ]
    net = ReactorNet(reactors)
    net.initialize(0.0)
    return net, reactors


# -----------------------------------------------------------------------------
# A) eval fan-out
# -----------------------------------------------------------------------------


def test_eval_scatters_state_and_fans_out_slices(
    recording_reactor: Callable[..., object],
) -> None:
    """eval scatters y, then hands each reactor its y/p slices in order."""
    net, reactors = _three_reactor_net(recording_reactor)
    y = np.arange(6, dtype=float)
    ydot = np.full(6, np.nan)
    p = np.array([10.0, 20.0, 30.0])

    status = net.eval(0.25, y, ydot, p)

    assert status is EvalStatus.SUCCESS
    assert np.allclose(reactors[0].state, [0.0, 1.0])
    assert np.allclose(reactors[1].state, [2.0, 3.0, 4.0])
    assert np.allclose(reactors[2].state, [5.0])

    t0, y0, p0 = reactors[0].calls[0]
    _, y1, p1 = reactors[1].calls[0]
    _, y2, p2 = reactors[2].calls[0]
    assert t0 == pytest.approx(0.25)
    assert np.allclose(y0, [0.0, 1.0])
    assert np.allclose(y1, [2.0, 3.0, 4.0])
    assert np.allclose(y2, [5.0])
    assert np.allclose(p0, [10.0])
    assert p1.size == 0
    assert np.allclose(p2, [20.0, 30.0])

    # Each reactor wrote only its own slice (each writes 1.0 on first call).
    assert np.all(ydot == 1.0)


def test_eval_leaves_inputs_untouched(recording_reactor: Callable[..., object]) -> None:
    """eval mutates ydot only; y and p are read."""
    net, _ = _three_reactor_net(recording_reactor)
    y = np.linspace(0.0, 1.0, 6)
    p = np.array([1.0, 2.0, 3.0])
    y_before, p_before = y.copy(), p.copy()

    net.eval(0.0, y, np.zeros(6), p)

    assert np.array_equal(y, y_before)
    assert np.array_equal(p, p_before)


def test_eval_does_not_touch_foreign_slices() -> None:
    """A reactor writing its own derivative leaves the others' entries alone."""

    def first(t: float, y: np.ndarray, p: np.ndarray) -> np.ndarray:
        return -2.0 * y

    def second(t: float, y: np.ndarray, p: np.ndarray) -> np.ndarray:
        return np.full_like(y, 7.0)

    net = ReactorNet(
        [FunctionReactor(first, [1.0, 2.0]), FunctionReactor(second, [0.0])]
    )
    net.initialize(0.0)

    ydot = np.zeros(3)
    assert net.eval(0.0, np.array([1.0, 2.0, 3.0]), ydot, np.zeros(0))
    assert np.allclose(ydot, [-2.0, -4.0, 7.0])


# -----------------------------------------------------------------------------
# B) eval failure boundary
# -----------------------------------------------------------------------------


def test_eval_failure_is_caught_logged_and_recorded(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A reactor exception becomes EvalStatus.FAILURE; nothing propagates."""

    def bad(t: float, y: np.ndarray, p: np.ndarray) -> np.ndarray:
        msg = "negative temperature"
        raise EvaluationError(msg)

    net = ReactorNet([FunctionReactor(bad, [1.0])])
    net.initialize(0.0)

    with caplog.at_level(logging.ERROR, logger="reactornet"):
        status = net.eval(0.0, np.ones(1), np.zeros(1), np.zeros(0))

    assert status is EvalStatus.FAILURE
    assert isinstance(net.last_eval_error, EvaluationError)
    assert "Terminating execution" in caplog.text
    assert "negative temperature" in caplog.text


def test_eval_failure_from_arbitrary_exception() -> None:
    """Any Exception subclass raised by a model is treated as a failure."""
    net = ReactorNet([FunctionReactor(lambda t, y, p: {}["k"], [1.0])])
    net.initialize(0.0)

    assert net.eval(0.0, np.ones(1), np.zeros(1), np.zeros(0)) is EvalStatus.FAILURE
    assert isinstance(net.last_eval_error, KeyError)


# -----------------------------------------------------------------------------
# C) gather / scatter
# -----------------------------------------------------------------------------


def test_initial_conditions_then_update_state_is_identity(
    recording_reactor: Callable[..., object],
) -> None:
    """Gathering then scattering the same buffer leaves every reactor unchanged."""
    net, reactors = _three_reactor_net(recording_reactor)
    for i, r in enumerate(reactors):
        r.set_state(np.arange(r.neq, dtype=float) + 10.0 * i)
    before = [r.state for r in reactors]

    y = np.zeros(net.neq)
    net.get_initial_conditions(0.0, y)
    net.update_state(y)

    assert np.allclose(y, np.concatenate(before))
    for r, b in zip(reactors, before, strict=True):
        assert np.array_equal(r.state, b)


@pytest.mark.parametrize("length", [0, 5, 7])
def test_buffer_length_mismatch_raises(
    length: int,
    recording_reactor: Callable[..., object],
) -> None:
    """get_initial_conditions/update_state require len == neq."""
    net, _ = _three_reactor_net(recording_reactor)

    with pytest.raises(SetupError, match="expected 6"):
        net.get_initial_conditions(0.0, np.zeros(length))
    with pytest.raises(SetupError, match="expected 6"):
        net.update_state(np.zeros(length))
