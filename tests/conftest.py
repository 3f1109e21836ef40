"""Shared test fixtures and configuration."""

import pytest
import torch
import numpy as np

from hhgap.components.neurons.hh_cond_beta_gap_traub import HHCondBetaGapTraub
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.integration.rk45 import IntegratorConfig


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure reproducible tests by setting all random seeds.

    This fixture runs automatically for every test to ensure deterministic behavior.
    """
    torch.manual_seed(42)
    np.random.seed(42)


@pytest.fixture
def device():
    """Device for testing (CPU by default)."""
    return torch.device("cpu")


@pytest.fixture
def resting_params():
    """Traub parameters with a stable resting potential near -70 mV."""
    return HHTraubParams(E_L=-70.0)


@pytest.fixture
def passive_params():
    """Parameters with negligible active conductances: a leaky RC membrane."""
    return HHTraubParams(g_Na=1e-6, g_K=1e-6)


@pytest.fixture
def precise_integrator():
    """Tight integrator tolerances for comparisons against analytic results."""
    return IntegratorConfig(eps_abs=1e-9, eps_rel=1e-12)


@pytest.fixture
def make_neuron():
    """Factory for single neurons with test-friendly defaults."""

    def _make(params=None, **kwargs):
        kwargs.setdefault("dt_ms", 0.1)
        kwargs.setdefault("slice_steps", 10)
        return HHCondBetaGapTraub(params=params, **kwargs)

    return _make


def run_slices(neuron, n_slices, start_slice=0):
    """Commit ``n_slices`` slices of a single neuron and return all spikes."""
    spikes = []
    for k in range(start_slice, start_slice + n_slices):
        spikes.extend(neuron.update(origin=k * neuron.slice_steps, from_lag=0, to_lag=neuron.slice_steps))
    return spikes


@pytest.fixture
def run():
    return run_slices
