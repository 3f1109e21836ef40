"""Immutable state of a single Traub-Miles neuron.

The state is a value: every operation that changes it returns a new
``NeuronState``. This is what lets waveform relaxation run provisional passes
on a snapshot without any possibility of touching the committed state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import torch

from hhgap.components.neurons.dynamics import STATE_VEC_SIZE, StateIndex, steady_state_gating
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.errors import ConfigurationError, validate_finite
from hhgap.units import StateTensor


# Names accepted by NeuronState.with_values()
SETTABLE_STATE = {
    "V_m": StateIndex.V_M,
    "Act_m": StateIndex.HH_M,
    "Inact_h": StateIndex.HH_H,
    "Act_n": StateIndex.HH_N,
}


@dataclass(frozen=True)
class NeuronState:
    """State variables of the model.

    Attributes:
        y: State vector [STATE_VEC_SIZE], float64. Treated as read-only;
            the tensor is cloned on construction.
        r: Number of refractory steps remaining (>= 0)
    """

    y: StateTensor
    r: int = 0

    def __post_init__(self) -> None:
        if self.y.shape != (STATE_VEC_SIZE,):
            raise ConfigurationError(
                f"State vector must have shape ({STATE_VEC_SIZE},), got {tuple(self.y.shape)}"
            )
        if self.r < 0:
            raise ConfigurationError(f"Refractory count must be non-negative, got {self.r}")
        # Detach from the caller's tensor so later in-place edits cannot leak in
        object.__setattr__(self, "y", self.y.detach().clone())

    @classmethod
    def at_rest(
        cls,
        params: HHTraubParams,
        V_m: Optional[float] = None,
        dtype: torch.dtype = torch.float64,
        device: Optional[torch.device] = None,
    ) -> "NeuronState":
        """State with gating variables at equilibrium and no synaptic conductance.

        Args:
            params: Model parameters (E_L is the default potential)
            V_m: Initial membrane potential (mV); defaults to E_L
        """
        V = torch.tensor(params.E_L if V_m is None else V_m, dtype=dtype, device=device)
        m_inf, h_inf, n_inf = steady_state_gating(V, params.V_T)
        y = torch.zeros(STATE_VEC_SIZE, dtype=dtype, device=device)
        y[StateIndex.V_M] = V
        y[StateIndex.HH_M] = m_inf
        y[StateIndex.HH_H] = h_inf
        y[StateIndex.HH_N] = n_inf
        return cls(y=y, r=0)

    # =========================================================================
    # Accessors
    # =========================================================================

    def __getitem__(self, index: StateIndex) -> float:
        return float(self.y[index])

    @property
    def V_m(self) -> float:
        """Membrane potential (mV)."""
        return float(self.y[StateIndex.V_M])

    @property
    def is_refractory(self) -> bool:
        return self.r > 0

    def to_dict(self) -> Dict[str, float]:
        return {name: float(self.y[index]) for name, index in SETTABLE_STATE.items()}

    # =========================================================================
    # Derived states
    # =========================================================================

    def with_vector(self, y: StateTensor) -> "NeuronState":
        return NeuronState(y=y, r=self.r)

    def with_refractory(self, r: int) -> "NeuronState":
        return NeuronState(y=self.y, r=r)

    def with_increments(self, **increments: float) -> "NeuronState":
        """Return a new state with values added to named state elements.

        Example:
            >>> state.with_increments(DG_EXC=weight * PSConInit_E)
        """
        y = self.y.clone()
        for name, value in increments.items():
            y[StateIndex[name]] += value
        return NeuronState(y=y, r=self.r)

    def with_values(self, **values: float) -> "NeuronState":
        """Return a new state with the given potential/gating values.

        Only V_m, Act_m, Inact_h and Act_n may be set.

        Raises:
            ConfigurationError: Unknown name, non-finite value, or negative
                (in)activation variable
        """
        y = self.y.clone()
        for name, value in values.items():
            if name not in SETTABLE_STATE:
                raise ConfigurationError(f"Unknown or read-only state variable: {name}")
            validate_finite(value, name)
            if name != "V_m" and value < 0:
                raise ConfigurationError("All (in)activation variables must be non-negative.")
            y[SETTABLE_STATE[name]] = value
        return NeuronState(y=y, r=self.r)
