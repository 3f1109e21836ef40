"""
Traub-Miles Hodgkin-Huxley neuron model.

Parameters, state, right-hand side, calibration, spike detection and the
update driver of the ``hh_cond_beta_gap_traub`` model.
"""

from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.components.neurons.dynamics import (
    STATE_VEC_SIZE,
    DynamicsDrive,
    StateIndex,
    gating_rates,
    hh_traub_dynamics,
    steady_state_gating,
)
from hhgap.components.neurons.hh_traub_state import NeuronState
from hhgap.components.neurons.calibration import (
    NeuronVariables,
    beta_peak_time,
    calibrate,
    normalisation_factor,
    refractory_steps,
)
from hhgap.components.neurons.spike_detector import DetectorState, SpikeDecision, SpikeDetector
from hhgap.components.neurons.recordables import RECORDABLE_ELEMENTS, RecordablesMap
from hhgap.components.neurons.hh_cond_beta_gap_traub import HHCondBetaGapTraub

__all__ = [
    # Parameters and state
    "HHTraubParams",
    "NeuronState",
    "StateIndex",
    "STATE_VEC_SIZE",
    # Dynamics
    "DynamicsDrive",
    "gating_rates",
    "hh_traub_dynamics",
    "steady_state_gating",
    # Calibration
    "NeuronVariables",
    "beta_peak_time",
    "calibrate",
    "normalisation_factor",
    "refractory_steps",
    # Spike detection
    "DetectorState",
    "SpikeDecision",
    "SpikeDetector",
    # Recordables
    "RECORDABLE_ELEMENTS",
    "RecordablesMap",
    # Neuron
    "HHCondBetaGapTraub",
]
