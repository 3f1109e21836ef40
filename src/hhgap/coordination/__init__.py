"""
Coordination of neuron populations across delivery slices.
"""

from hhgap.coordination.waveform_relaxation import SliceReport, WaveformRelaxationScheduler

__all__ = ["SliceReport", "WaveformRelaxationScheduler"]
