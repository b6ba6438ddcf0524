# reactornet/examples/reactor_chain.py
"""Stiff kinetics in a reactor network, driven with ReactorNet.advance().

This example demonstrates the core API:

- Reactors are registered in order; each owns a contiguous slice of the
  global state vector (see ReactorNet.offsets).
- ReactorNet.advance(t) integrates to exactly t and scatters the solution back
  into the reactors, so reactor.state is current after every call.
- The first advance() derives the maximum internal step from its interval
  unless one is configured.

Two systems are run:

1) Robertson's chemical kinetics (A -> B, 2B -> B + C, B + C -> A + C) in a
   single reactor. Rate constants span nine orders of magnitude, so an
   explicit method would need impractically small steps.
2) A chain of three tanks where each tank drains into the next. Downstream
   tanks read the upstream reactor's state, so the coupling flows through the
   network's state scatter.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from reactornet import FunctionReactor, ReactorNet, ReactorNetOptions

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "reactor_chain"


def robertson_rhs(
    t: float,  # noqa: ARG001 (autonomous system)
    y: np.ndarray,
    params: np.ndarray,
) -> np.ndarray:
    """RHS for Robertson's kinetics with multiplicative rate parameters.

    Args:
        t: Current time (unused).
        y: Concentrations (A, B, C).
        params: Multipliers on (k1, k2, k3); all 1.0 unless changed.

    Returns:
        d(A, B, C)/dt.
    """
    k1 = 0.04 * params[0]
    k2 = 3.0e7 * params[1]
    k3 = 1.0e4 * params[2]
    a, b, c = y

    r1 = k1 * a
    r2 = k2 * b * b
    r3 = k3 * b * c
    return np.array([-r1 + r3, r1 - r2 - r3, r2])


def run_robertson(output_times: np.ndarray) -> np.ndarray:
    """Integrate Robertson's problem and return states at output_times.

    Args:
        output_times: Increasing output times, starting after t=0.

    Returns:
        Array of shape (len(output_times), 3).
    """
    reactor = FunctionReactor(
        robertson_rhs,
        [1.0, 0.0, 0.0],
        components=["A", "B", "C"],
        sensitivity_parameters=["k1", "k2", "k3"],
        name="robertson",
    )
    net = ReactorNet(
        [reactor],
        options=ReactorNetOptions(rtol=1e-6, atol=1e-12, max_step=float(output_times[-1])),
    )

    out = np.empty((output_times.size, 3))
    for i, t in enumerate(output_times):
        net.advance(float(t))
        out[i] = reactor.state
    return out


def run_tank_chain(output_times: np.ndarray, rates: tuple[float, ...]) -> np.ndarray:
    """Integrate a chain of tanks draining into each other.

    Tank 0 starts full; tank i drains at rates[i] into tank i + 1.

    Args:
        output_times: Increasing output times, starting after t=0.
        rates: Drain rate of each tank.

    Returns:
        Array of shape (len(output_times), len(rates)).
    """
    tanks: list[FunctionReactor] = []
    for i, k in enumerate(rates):
        upstream = tanks[i - 1] if i > 0 else None
        k_in = rates[i - 1] if i > 0 else 0.0

        def rhs(
            t: float,  # noqa: ARG001
            y: np.ndarray,
            p: np.ndarray,  # noqa: ARG001
            *,
            k: float = k,
            k_in: float = k_in,
            upstream: FunctionReactor | None = upstream,
        ) -> np.ndarray:
            inflow = 0.0 if upstream is None else k_in * upstream.state[0]
            return np.array([inflow - k * y[0]])

        y0 = [1.0] if i == 0 else [0.0]
        tanks.append(FunctionReactor(rhs, y0, components=["V"], name=f"tank{i}"))

    net = ReactorNet(tanks)
    out = np.empty((output_times.size, len(tanks)))
    for j, t in enumerate(output_times):
        net.advance(float(t))
        out[j] = [tank.state[0] for tank in tanks]
    return out


def save_robertson_plot(time: np.ndarray, states: np.ndarray, *, out_path: Path) -> None:
    """Save Robertson trajectories on a log time axis (B scaled by 1e4)."""
    plt.figure(figsize=(8, 5))
    plt.semilogx(time, states[:, 0], label="A")
    plt.semilogx(time, 1.0e4 * states[:, 1], label="B x 1e4")
    plt.semilogx(time, states[:, 2], label="C")
    plt.grid(visible=True)
    plt.legend()

    drift = float(np.max(np.abs(states.sum(axis=1) - 1.0)))
    plt.title(f"Robertson kinetics\nmax |A+B+C-1| = {drift:.3e}")
    plt.xlabel("Time")
    plt.ylabel("Concentration")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def save_chain_plot(time: np.ndarray, states: np.ndarray, *, out_path: Path) -> None:
    """Save tank volumes over time."""
    plt.figure(figsize=(8, 5))
    for i in range(states.shape[1]):
        plt.plot(time, states[:, i], label=f"tank {i}")
    plt.grid(visible=True)
    plt.legend()
    plt.title("Tank chain")
    plt.xlabel("Time")
    plt.ylabel("Volume")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def main() -> None:
    """Run both systems and save their plots.

    Files are written to: examples/output/reactor_chain/
    """
    # ---------------------------------------------------------------------
    # (1) Robertson kinetics
    # ---------------------------------------------------------------------
    t_rob = np.logspace(-5, 5, 61)
    states_rob = run_robertson(t_rob)
    save_robertson_plot(t_rob, states_rob, out_path=_OUTPUT_DIR / "robertson.png")

    # ---------------------------------------------------------------------
    # (2) Tank chain
    # ---------------------------------------------------------------------
    t_chain = np.linspace(0.1, 10.0, 100)
    states_chain = run_tank_chain(t_chain, rates=(2.0, 0.5, 0.1))
    save_chain_plot(t_chain, states_chain, out_path=_OUTPUT_DIR / "tank_chain.png")

    print(f"Saved plots to {_OUTPUT_DIR}")


if __name__ == "__main__":
    main()
