# src/reactornet/config.py
"""Configuration model for reactor networks.

This module defines the pydantic-facing configuration object (for mappings
coming from YAML/JSON or keyword arguments) and translates it into the native
:class:`reactornet.network.ReactorNetOptions` dataclass.

Notes:
    - Unknown fields are allowed and ignored (`extra="allow"`), so a network
      section can live inside a larger application config.
    - Reading configuration files is left to the caller.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from reactornet.integrator import DEFAULT_MAX_STEPS, MethodName
from reactornet.network import ReactorNet, ReactorNetOptions


class NetworkConfig(BaseModel):
    """Configuration schema for a ReactorNet.

    Defaults match ReactorNetOptions: tight state tolerances suited to stiff
    chemistry and looser sensitivity tolerances.
    """

    model_config = ConfigDict(extra="allow")

    method: MethodName = Field(
        default="bdf",
        description="Implicit integration method",
    )

    rtol: float = Field(default=1e-9, ge=0.0)
    atol: float = Field(default=1e-15, ge=0.0)
    rtol_sens: float = Field(default=1e-4, ge=0.0)
    atol_sens: float = Field(default=1e-4, ge=0.0)

    max_step: float | None = Field(
        default=None,
        gt=0.0,
        description="Maximum internal step; unset derives it from the first interval",
    )
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)

    verbose: bool = Field(
        default=False,
        description="Log initialization diagnostics",
    )

    def to_options(self) -> ReactorNetOptions:
        """Convert this config to native ReactorNetOptions.

        Returns:
            Fully constructed ReactorNetOptions instance.
        """
        return ReactorNetOptions(
            method=self.method,
            rtol=self.rtol,
            atol=self.atol,
            rtol_sens=self.rtol_sens,
            atol_sens=self.atol_sens,
            max_step=self.max_step,
            max_steps=self.max_steps,
            verbose=self.verbose,
        )

    def build_network(self) -> ReactorNet:
        """Return an empty ReactorNet configured from this model."""
        return ReactorNet(options=self.to_options())
