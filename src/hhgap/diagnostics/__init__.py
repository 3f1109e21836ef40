"""
Recording of neuron state for analysis.
"""

from hhgap.diagnostics.recorder import StateRecorder

__all__ = ["StateRecorder"]
