"""
Synaptic input: per-step ring buffers and conductance-jump injection.
"""

from hhgap.components.synapses.input_buffer import (
    InputRingBuffer,
    SynapseChannel,
    inject_spikes,
    resolve_channel,
)

__all__ = [
    "InputRingBuffer",
    "SynapseChannel",
    "inject_spikes",
    "resolve_channel",
]
