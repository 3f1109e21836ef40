"""
Unit tests for the adaptive RK45 integrator.
"""

import math

import pytest
import torch

from hhgap.errors import ConfigurationError, NumericalFailureError
from hhgap.integration.rk45 import MIN_EPS_REL, AdaptiveIntegrator, IntegratorConfig


def decay(t, y):
    return -y


class TestIntegratorConfig:
    """Test tolerance validation."""

    def test_defaults(self):
        config = IntegratorConfig()
        assert config.eps_abs == 1e-6
        assert config.eps_rel == 1e-9
        assert config.min_step_ms == 1e-10

    def test_relative_tolerance_floor(self):
        with pytest.raises(ConfigurationError, match="eps_rel"):
            IntegratorConfig(eps_rel=MIN_EPS_REL / 10)

    def test_negative_min_step_rejected(self):
        with pytest.raises(ConfigurationError):
            IntegratorConfig(min_step_ms=-1.0)


class TestAdaptiveIntegrator:
    """Test error-controlled integration across one step."""

    def test_exponential_decay(self):
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-10, eps_rel=1e-10))
        y0 = torch.tensor([1.0, -2.0], dtype=torch.float64)

        y, h_next = integrator.evolve(decay, y0, step_ms=1.0, h=0.1)

        expected = y0 * math.exp(-1.0)
        assert torch.allclose(y, expected, rtol=0.0, atol=1e-8)
        assert 0.0 < h_next <= 1.0
        assert y.dtype == torch.float64
        assert torch.equal(y0, torch.tensor([1.0, -2.0], dtype=torch.float64))

    def test_lands_on_step_boundary(self):
        """Test that the last sub-step is clipped to end exactly at step_ms."""
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-12))
        y0 = torch.tensor([0.0], dtype=torch.float64)

        # dy/dt = 1: the result is the elapsed time
        y, _ = integrator.evolve(lambda t, y: torch.ones_like(y), y0, step_ms=0.1, h=0.03)

        assert y.item() == pytest.approx(0.1, abs=1e-14)

    def test_time_dependent_rhs(self):
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-12))
        y0 = torch.tensor([0.0], dtype=torch.float64)

        y, _ = integrator.evolve(lambda t, y: torch.full_like(y, 3.0 * t * t), y0, step_ms=0.5, h=0.5)

        assert y.item() == pytest.approx(0.125, rel=1e-10)

    def test_step_size_grows_on_easy_problem(self):
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-3, eps_rel=1e-3))
        y0 = torch.tensor([1.0], dtype=torch.float64)

        _, h_next = integrator.evolve(decay, y0, step_ms=1.0, h=1e-4)

        assert h_next > 1e-4
        assert integrator.n_accepted > 0
        assert integrator.n_evaluations > integrator.n_accepted

    def test_stiff_problem_shrinks_step(self):
        """Test that a too large initial step is reduced and the result stays accurate."""
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-8))
        y0 = torch.tensor([1.0], dtype=torch.float64)

        y, h_next = integrator.evolve(lambda t, y: -50.0 * y, y0, step_ms=0.1, h=0.1)

        assert integrator.n_accepted > 1
        assert h_next < 0.1
        assert y.item() == pytest.approx(math.exp(-5.0), abs=1e-6)

    def test_non_finite_rhs_fails(self):
        """Test that an RHS producing NaN raises instead of clamping."""
        integrator = AdaptiveIntegrator(name="n0")
        y0 = torch.tensor([1.0], dtype=torch.float64)

        with pytest.raises(NumericalFailureError, match=r"\[n0\]"):
            integrator.evolve(lambda t, y: torch.full_like(y, float("nan")), y0, step_ms=0.1, h=0.1)

    def test_minimum_step_enforced(self):
        integrator = AdaptiveIntegrator(IntegratorConfig(eps_abs=1e-14, min_step_ms=0.01))
        y0 = torch.tensor([1.0], dtype=torch.float64)

        with pytest.raises(NumericalFailureError, match="minimum sub-step") as exc_info:
            integrator.evolve(lambda t, y: -1000.0 * y, y0, step_ms=0.1, h=0.1)

        assert exc_info.value.h_ms < 0.01
