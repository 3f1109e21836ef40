"""
Unit tests for derived-constant calibration.

Tests the unit-peak normalisation of beta-function conductances and the
conversion of the refractory period to whole steps.
"""

import math

import pytest

from hhgap.components.neurons.calibration import (
    beta_peak_time,
    calibrate,
    normalisation_factor,
    refractory_steps,
)
from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.errors import ConfigurationError


def beta_response(t, tau_rise, tau_decay, impulse):
    """Analytic conductance of a (jump, level) pair after an impulse at t = 0."""
    if tau_rise == tau_decay:
        return impulse * t * math.exp(-t / tau_decay)
    return impulse * (math.exp(-t / tau_decay) - math.exp(-t / tau_rise)) / (1.0 / tau_rise - 1.0 / tau_decay)


class TestBetaNormalisation:
    """Test the normalisation of beta-function conductances."""

    @pytest.mark.parametrize("tau_rise,tau_decay", [(0.5, 5.0), (0.5, 10.0), (0.2, 1.0), (2.0, 3.0)])
    def test_unit_peak(self, tau_rise, tau_decay):
        """Test that the normalised response peaks at exactly 1 at the peak time."""
        factor = normalisation_factor(tau_rise, tau_decay)
        t_p = beta_peak_time(tau_rise, tau_decay)

        assert beta_response(t_p, tau_rise, tau_decay, factor) == pytest.approx(1.0, rel=1e-12)
        # Peak: neighbouring times are lower
        assert beta_response(t_p * 0.99, tau_rise, tau_decay, factor) < 1.0
        assert beta_response(t_p * 1.01, tau_rise, tau_decay, factor) < 1.0

    def test_default_excitatory_peak_time(self):
        """Test the analytic peak time for the default excitatory synapse."""
        expected = 5.0 * 0.5 * math.log(10.0) / 4.5
        assert beta_peak_time(0.5, 5.0) == pytest.approx(expected)

    def test_equal_time_constants(self):
        """Test that equal rise and decay times give the alpha-function factor e/tau."""
        assert normalisation_factor(2.0, 2.0) == pytest.approx(math.e / 2.0)
        assert beta_peak_time(2.0, 2.0) == 2.0
        assert beta_response(2.0, 2.0, 2.0, math.e / 2.0) == pytest.approx(1.0)


class TestRefractorySteps:
    """Test conversion of t_ref into steps."""

    def test_whole_number_of_steps(self):
        assert refractory_steps(2.0, 0.1) == 20
        assert refractory_steps(3.0, 0.25) == 12

    def test_zero_refractory_time(self):
        assert refractory_steps(0.0, 0.1) == 0

    def test_non_multiple_rejected(self):
        """Test that t_ref must be a multiple of the resolution."""
        with pytest.raises(ConfigurationError, match="multiple of the resolution"):
            refractory_steps(2.0, 0.3)


class TestCalibrate:
    """Test full calibration."""

    def test_default_variables(self):
        variables = calibrate(HHTraubParams(), 0.1)

        assert variables.refractory_counts == 20
        assert variables.step_ms == 0.1
        assert variables.PSConInit_E == pytest.approx(normalisation_factor(0.5, 5.0))
        assert variables.PSConInit_I == pytest.approx(normalisation_factor(0.5, 10.0))

    def test_invalid_resolution(self):
        with pytest.raises(ConfigurationError):
            calibrate(HHTraubParams(), 0.0)
