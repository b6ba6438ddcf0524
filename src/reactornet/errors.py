# src/reactornet/errors.py
"""Error types and standardized raise helpers for reactornet.

This module centralizes:
- the exception hierarchy shared by the network, reactors and integrator, and
- small helpers that build actionable messages for the common setup failures.

Propagation model:
- SetupError surfaces synchronously from initialize() and index lookups.
- EvaluationError never crosses the integrator callback boundary; the network
  records it and the integrator converts it into IntegrationAbortedError.
- IntegrationFailure propagates normally from integrate()/step().
"""

from __future__ import annotations

from typing import Final

_FLOW_REACTOR_ALONE_MSG: Final[str] = (
    "Flow reactors must be used alone: found a flow reactor in a network with "
    "{n_handles} registered handles. Flow reactors encode spatial derivatives "
    "that cannot be coupled into a lumped multi-reactor network."
)
_UNKNOWN_COMPONENT_MSG: Final[str] = "Unknown component '{name}' in reactor {reactor}"
_LENGTH_MISMATCH_MSG: Final[str] = "{name} has length {got}; expected {expected}"
_UNSUPPORTED_OPTION_MSG: Final[str] = (
    "Unsupported {option} '{value}'. Supported values: {allowed}"
)


class ReactorNetError(Exception):
    """Base exception for reactornet errors."""


class SetupError(ReactorNetError, ValueError):
    """Raised when a network, reactor or integrator is configured inconsistently."""


class UnsupportedOptionError(SetupError):
    """Raised when an integrator option (method, problem type, iterator) is unknown."""


class NetworkStateError(ReactorNetError, RuntimeError):
    """Raised when an operation is not valid in the network's current state."""


class EvaluationError(ReactorNetError, RuntimeError):
    """Raised by a reactor (or its model) while computing derivatives."""


class IntegrationFailure(ReactorNetError, RuntimeError):
    """Raised when the integrator cannot reach the requested time."""


class IntegrationAbortedError(IntegrationFailure):
    """Raised when an evaluation failure forced the running integration to stop.

    The integrator's intermediate state is not trustworthy after a failed
    evaluation, so the run must be discarded and the network reinitialized.
    The triggering exception is available as ``__cause__``.
    """


def raise_flow_reactor_not_alone(n_handles: int) -> None:
    """Raise a standardized SetupError for a coupled flow reactor.

    Args:
        n_handles: Number of handles registered with the network.

    Raises:
        SetupError: Always.
    """
    raise SetupError(_FLOW_REACTOR_ALONE_MSG.format(n_handles=n_handles))


def raise_unknown_component(name: str, reactor: object) -> None:
    """Raise a standardized SetupError for an unrecognized component name.

    Args:
        name: Requested component name.
        reactor: Reactor label or index used in the message.

    Raises:
        SetupError: Always.
    """
    raise SetupError(_UNKNOWN_COMPONENT_MSG.format(name=name, reactor=reactor))


def raise_length_mismatch(*, name: str, expected: int, got: int) -> None:
    """Raise a standardized SetupError for a buffer of the wrong length.

    Args:
        name: Name of the buffer with the length issue.
        expected: Required length.
        got: Observed length.

    Raises:
        SetupError: Always.
    """
    raise SetupError(_LENGTH_MISMATCH_MSG.format(name=name, expected=expected, got=got))


def raise_unsupported_option(option: str, value: object, allowed: tuple[str, ...]) -> None:
    """Raise a standardized UnsupportedOptionError.

    Args:
        option: Option family (for example, "method").
        value: Rejected value.
        allowed: Accepted values, listed in the message.

    Raises:
        UnsupportedOptionError: Always.
    """
    raise UnsupportedOptionError(
        _UNSUPPORTED_OPTION_MSG.format(option=option, value=value, allowed=list(allowed))
    )
