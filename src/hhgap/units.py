"""Tensor types for the neuron engine.

Distinguishes the two kinds of float64 tensors passed between the update
driver, the right-hand side and the gap-junction buffers. Uses Python's
NewType for zero-runtime-cost type checking with mypy/pyright.

All quantities use the physical units of the Traub-Miles model: potentials
in mV, conductances in nS, currents in pA, capacitance in pF and time in ms.
"""

from typing import NewType

import torch

StateTensor = NewType("StateTensor", torch.Tensor)
"""Full neuron state vector [STATE_VEC_SIZE] (float64)."""

CoefficientTensor = NewType("CoefficientTensor", torch.Tensor)
"""Piecewise interpolation coefficients [n_steps, order + 1] (float64)."""
