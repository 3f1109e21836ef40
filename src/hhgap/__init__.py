"""
HHGAP - Traub-Miles Hodgkin-Huxley neurons with gap junctions

Conductance-based Hodgkin-Huxley neurons (Traub & Miles 1991) with
beta-function synapses and electrical coupling resolved by waveform
relaxation.

Quick Start:
============

    from hhgap import SimulationConfig, WaveformRelaxationScheduler

    sim = WaveformRelaxationScheduler(SimulationConfig(dt_ms=0.1, slice_steps=10))
    a, b = sim.add_neuron(), sim.add_neuron()
    sim.connect_gap(a, b, weight=10.0)
    sim.inject_current(a, step=0, amplitude=1000.0)
    reports = sim.simulate(duration_ms=20.0)

Single neurons can be driven directly:

    from hhgap import HHCondBetaGapTraub

    neuron = HHCondBetaGapTraub()
    neuron.receive_spike(step=5, weight=2.0)
    spikes = neuron.update(origin=0, from_lag=0, to_lag=10)
"""

__version__ = "0.1.0"

# ============================================================================
# PUBLIC API
# ============================================================================

# Configuration
from hhgap.config import BaseConfig, GlobalConfig, SimulationConfig

# Errors
from hhgap.errors import (
    ConfigurationError,
    HHGapError,
    NumericalFailureError,
    SimulationHaltedError,
    RoutingError,
)

# Neuron model
from hhgap.components.neurons import (
    HHCondBetaGapTraub,
    HHTraubParams,
    NeuronState,
    NeuronVariables,
    StateIndex,
)
from hhgap.components.synapses import SynapseChannel
from hhgap.components.gap_junctions import GapJunctionConfig, GapJunctionCoupling
from hhgap.integration import AdaptiveIntegrator, IntegratorConfig

# Events and scheduling
from hhgap.core.event_system import Connection, SpikeEvent
from hhgap.coordination import SliceReport, WaveformRelaxationScheduler

# Diagnostics
from hhgap.diagnostics import StateRecorder

__all__ = [
    "__version__",
    # Configuration
    "BaseConfig",
    "GlobalConfig",
    "SimulationConfig",
    # Errors
    "HHGapError",
    "ConfigurationError",
    "RoutingError",
    "NumericalFailureError",
    "SimulationHaltedError",
    # Neuron model
    "HHCondBetaGapTraub",
    "HHTraubParams",
    "NeuronState",
    "NeuronVariables",
    "StateIndex",
    "SynapseChannel",
    "GapJunctionConfig",
    "GapJunctionCoupling",
    "AdaptiveIntegrator",
    "IntegratorConfig",
    # Events and scheduling
    "Connection",
    "SpikeEvent",
    "SliceReport",
    "WaveformRelaxationScheduler",
    # Diagnostics
    "StateRecorder",
]
