"""
Unit tests for the state recorder.
"""

import numpy as np
import pytest

from hhgap.diagnostics.recorder import StateRecorder
from hhgap.errors import ConfigurationError


class TestStateRecorder:
    """Test sampling of recordables."""

    def test_samples_every_interval(self, make_neuron, passive_params, run):
        neuron = make_neuron(passive_params)
        recorder = StateRecorder(neuron, record_from=("V_m", "Act_n"), interval_steps=5)

        run(neuron, 2)

        assert recorder.steps == [5, 10, 15, 20]
        data = recorder.to_numpy()
        np.testing.assert_allclose(data["times_ms"], [0.5, 1.0, 1.5, 2.0])
        assert data["V_m"].shape == (4,)
        assert data["V_m"][-1] == neuron.state.V_m

    def test_multiple_recorders(self, make_neuron, passive_params, run):
        neuron = make_neuron(passive_params)
        fine = StateRecorder(neuron, interval_steps=1)
        coarse = StateRecorder(neuron, interval_steps=10)

        run(neuron, 1)

        assert fine.n_samples == 10
        assert coarse.n_samples == 1
        assert coarse.values["V_m"][0] == fine.values["V_m"][-1]

    def test_clear(self, make_neuron, run):
        neuron = make_neuron()
        recorder = StateRecorder(neuron)
        run(neuron, 1)
        recorder.clear()
        assert recorder.n_samples == 0
        assert recorder.values["V_m"] == []

    def test_not_called_by_relaxation_passes(self, make_neuron, passive_params):
        neuron = make_neuron(passive_params)
        recorder = StateRecorder(neuron)
        neuron.wfr_update(origin=0, from_lag=0, to_lag=10)
        assert recorder.n_samples == 0

    def test_unknown_recordable(self, make_neuron):
        with pytest.raises(ConfigurationError, match="Unknown recordable"):
            StateRecorder(make_neuron(), record_from=("I_Na",))

    def test_invalid_interval(self, make_neuron):
        with pytest.raises(ConfigurationError):
            StateRecorder(make_neuron(), interval_steps=0)
