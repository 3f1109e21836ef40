"""
Neural components: neurons, synapses, and gap junctions.

This module provides the building blocks of a gap-junction coupled
Traub-Miles network.
"""

from hhgap.components.gap_junctions import (
    GapDrive,
    GapJunctionConfig,
    GapJunctionCoupling,
    WaveformRelaxationBuffer,
)
from hhgap.components.neurons import (
    HHCondBetaGapTraub,
    HHTraubParams,
    NeuronState,
    NeuronVariables,
)
from hhgap.components.synapses import InputRingBuffer, SynapseChannel

__all__ = [
    # Gap junctions
    "GapDrive",
    "GapJunctionConfig",
    "GapJunctionCoupling",
    "WaveformRelaxationBuffer",
    # Neurons
    "HHCondBetaGapTraub",
    "HHTraubParams",
    "NeuronState",
    "NeuronVariables",
    # Synapses
    "InputRingBuffer",
    "SynapseChannel",
]
