"""
Unit tests for the slice scheduler and waveform relaxation of coupled neurons.

Tests convergence of the relaxation iteration, the stationary coupling
current, the iteration cap, spike routing through delayed connections and
propagation of numerical failures.
"""

import logging

import pytest
import torch

from hhgap.components.neurons.hh_traub_params import HHTraubParams
from hhgap.components.synapses.input_buffer import SynapseChannel
from hhgap.config.base import SimulationConfig
from hhgap.coordination.waveform_relaxation import WaveformRelaxationScheduler
from hhgap.diagnostics.recorder import StateRecorder
from hhgap.errors import ConfigurationError, NumericalFailureError, SimulationHaltedError
from hhgap.integration.rk45 import IntegratorConfig

PASSIVE = HHTraubParams(g_Na=1e-6, g_K=1e-6)


@pytest.fixture
def config():
    return SimulationConfig(dt_ms=0.1, slice_steps=10, integrator=IntegratorConfig(eps_abs=1e-9))


def coupled_pair(config, g=5.0, V_a=-52.0, V_b=-68.0, params_a=PASSIVE, params_b=PASSIVE):
    sim = WaveformRelaxationScheduler(config)
    a = sim.add_neuron(params_a, name="a")
    b = sim.add_neuron(params_b, name="b")
    sim.connect_gap(a, b, weight=g)
    sim.neurons[a].set_state(V_m=V_a)
    sim.neurons[b].set_state(V_m=V_b)
    return sim


class TestRelaxationConvergence:
    """Test the relaxation iteration of two coupled neurons."""

    def test_converges_with_decreasing_differences(self, config):
        sim = coupled_pair(config)
        reports = sim.run(n_slices=3)

        for report in reports:
            assert report.converged
            assert 2 <= report.iterations <= 8
            assert report.deviations[-1] <= config.gap_junctions.wfr_tol

        first = reports[0].deviations
        assert all(later < earlier for earlier, later in zip(first, first[1:]))

    def test_coupling_pulls_potentials_together(self, config):
        """Test that the potential difference decays faster than without coupling."""
        sim = coupled_pair(config)
        sim.run(n_slices=3)

        a, b = sim.neurons
        # Uncoupled: 16 mV * exp(-3/20) = 13.8 mV; coupled: tau = C_m / (g_L + 2 g) = 10 ms
        assert abs(a.state.V_m - b.state.V_m) < 16.0 * torch.exp(torch.tensor(-0.3)).item() + 0.2
        assert a.state.V_m < -52.0
        assert b.state.V_m > -68.0

    def test_stationary_coupling_current(self, config):
        """Test a coupled steady state where leak and gap currents balance.

        With g_L = 10 nS, g = 5 nS, E_L = -60 / -70 mV the steady state is
        V_a = -62.5 mV, V_b = -67.5 mV, and g (V_b - V_a) = g_L (V_a - E_L,a).
        """
        g = 5.0
        sim = coupled_pair(
            config,
            g=g,
            V_a=-62.5,
            V_b=-67.5,
            params_a=HHTraubParams(g_Na=1e-6, g_K=1e-6, E_L=-60.0),
            params_b=HHTraubParams(g_Na=1e-6, g_K=1e-6, E_L=-70.0),
        )
        sim.run(n_slices=2)

        a, b = sim.neurons
        assert a.state.V_m == pytest.approx(-62.5, abs=1e-3)
        assert b.state.V_m == pytest.approx(-67.5, abs=1e-3)

        voltages = torch.tensor([a.state.V_m, b.state.V_m], dtype=torch.float64)
        current = sim.coupling.coupling_current(voltages)
        assert current[0].item() == pytest.approx(g * (b.state.V_m - a.state.V_m))
        assert current[0].item() == pytest.approx(a.params.g_L * (a.state.V_m - a.params.E_L), abs=0.05)

    def test_iteration_cap(self, config, caplog):
        """Test that hitting the cap logs a warning and accepts the last iterate."""
        config.wfr_max_iterations = 1
        sim = coupled_pair(config)

        with caplog.at_level(logging.WARNING, logger="hhgap.coordination.waveform_relaxation"):
            report = sim.run_slice()

        assert not report.converged
        assert report.iterations == 1
        assert sim.current_step == 10
        assert "did not converge" in caplog.text

    def test_uncoupled_neurons_skip_relaxation(self, config):
        sim = WaveformRelaxationScheduler(config)
        sim.add_neuron(PASSIVE)
        report = sim.run_slice()
        assert report.iterations == 0
        assert report.deviations == []

    def test_threads_match_serial(self, config):
        """Test that updating on worker threads gives the same trajectories."""
        serial = coupled_pair(config)
        config_threads = SimulationConfig(
            dt_ms=0.1, slice_steps=10, n_threads=2, integrator=IntegratorConfig(eps_abs=1e-9)
        )
        threaded = coupled_pair(config_threads)

        serial.run(n_slices=2)
        threaded.run(n_slices=2)

        for s, t in zip(serial.neurons, threaded.neurons):
            assert torch.equal(s.state.y, t.state.y)

    def test_worker_pool_released_after_run(self, config):
        config.n_threads = 2
        sim = coupled_pair(config)
        sim.run(n_slices=1)
        assert sim._executor is None

        sim.run_slice()
        assert sim._executor is None
        assert sim.current_step == 20


class TestSpikeRouting:
    """Test delivery of spikes through delayed connections."""

    def test_delayed_delivery(self, config):
        sim = WaveformRelaxationScheduler(config)
        pre = sim.add_neuron(HHTraubParams(E_L=-70.0), name="pre")
        post = sim.add_neuron(PASSIVE, name="post")
        sim.connect(pre, post, weight=2.0, delay_steps=15)
        recorder = StateRecorder(sim.neurons[post], record_from=("g_ex",))
        for step in range(5):
            sim.inject_current(pre, step, 8000.0)

        reports = sim.run(n_slices=5)

        spikes = [s for r in reports for s in r.spikes]
        assert len(spikes) == 1
        spike_step = spikes[0].step

        # Delivered to step s + d - 1, acting from step s + d: first non-zero
        # conductance sample is at the end of step s + d
        first_nonzero = next(step for step, g in zip(recorder.steps, recorder.values["g_ex"]) if g > 0.0)
        assert first_nonzero == spike_step + 15 + 1

    def test_short_delay_rejected(self, config):
        sim = WaveformRelaxationScheduler(config)
        a, b = sim.add_neuron(), sim.add_neuron()
        with pytest.raises(ConfigurationError, match="delay_steps"):
            sim.connect(a, b, weight=1.0, delay_steps=5)

    def test_channel_sign_checked_at_connect(self, config):
        sim = WaveformRelaxationScheduler(config)
        a, b = sim.add_neuron(), sim.add_neuron()
        with pytest.raises(ConfigurationError, match="excitatory"):
            sim.connect(a, b, weight=-1.0, channel="excitatory")
        assert sim.connect(a, b, weight=-1.0, channel="inhibitory").channel is SynapseChannel.INHIBITORY
        assert sim.connections[a][0].weight == -1.0

    def test_unknown_neuron(self, config):
        sim = WaveformRelaxationScheduler(config)
        sim.add_neuron()
        with pytest.raises(ConfigurationError):
            sim.connect(0, 3, weight=1.0)
        with pytest.raises(ConfigurationError):
            sim.connect_gap(0, 0, weight=1.0)

    def test_network_frozen_after_start(self, config):
        sim = WaveformRelaxationScheduler(config)
        sim.add_neuron(PASSIVE)
        sim.run_slice()
        with pytest.raises(ConfigurationError):
            sim.add_neuron()


class TestFailures:
    """Test error propagation through the scheduler."""

    def test_numerical_failure_propagates(self, config, caplog):
        config.integrator = IntegratorConfig(eps_abs=1e-14, min_step_ms=0.05)
        sim = WaveformRelaxationScheduler(config)
        index = sim.add_neuron()
        sim.neurons[index].set_state(V_m=-30.0)

        with caplog.at_level(logging.ERROR, logger="hhgap.coordination.waveform_relaxation"):
            with pytest.raises(NumericalFailureError):
                sim.run_slice()

        assert sim.current_step == 0
        assert "Numerical failure" in caplog.text

    def test_halts_after_numerical_failure(self, config):
        """Test that a failed slice cannot be retried once other neurons committed it."""
        config.integrator = IntegratorConfig(eps_abs=1e-14, min_step_ms=0.05)
        sim = WaveformRelaxationScheduler(config)
        ok = sim.add_neuron(PASSIVE, name="ok")
        bad = sim.add_neuron(name="bad")
        sim.neurons[bad].set_state(V_m=-30.0)

        with pytest.raises(NumericalFailureError, match=r"\[bad\]"):
            sim.run_slice()

        assert sim.failed_step == 0
        assert sim.neurons[ok].inputs.origin == 10

        sim.neurons[bad].set_state(V_m=-70.0)
        with pytest.raises(SimulationHaltedError, match="step 0"):
            sim.run_slice()
        with pytest.raises(SimulationHaltedError):
            sim.run(n_slices=1)
        assert sim.current_step == 0

    def test_simulate_requires_whole_slices(self, config):
        sim = WaveformRelaxationScheduler(config)
        sim.add_neuron(PASSIVE)
        with pytest.raises(ConfigurationError):
            sim.simulate(duration_ms=1.5)
        assert len(sim.simulate(duration_ms=2.0)) == 2
        assert sim.time_ms == pytest.approx(2.0)
