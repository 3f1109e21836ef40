"""
Unit tests for the spike detector and refractory state machine.
"""

from hhgap.components.neurons.spike_detector import DetectorState, SpikeDetector


class TestSpikeDetector:
    """Test threshold and falling-flank detection."""

    def setup_method(self):
        # V_T = -63 mV, threshold at -33 mV, 20 refractory steps
        self.detector = SpikeDetector(V_T=-63.0, refractory_counts=20)

    def test_threshold(self):
        assert self.detector.threshold == -33.0

    def test_spike_on_falling_flank(self):
        decision = self.detector.step(r=0, V_prev=30.0, V=20.0)
        assert decision.spiked
        assert decision.r == 20

    def test_no_spike_on_rising_flank(self):
        decision = self.detector.step(r=0, V_prev=10.0, V=20.0)
        assert not decision.spiked
        assert decision.r == 0

    def test_no_spike_below_threshold(self):
        decision = self.detector.step(r=0, V_prev=-30.0, V=-40.0)
        assert not decision.spiked

    def test_flat_top_does_not_trigger(self):
        """Test that equal consecutive potentials are not a falling flank."""
        decision = self.detector.step(r=0, V_prev=10.0, V=10.0)
        assert not decision.spiked

    def test_threshold_is_inclusive(self):
        decision = self.detector.step(r=0, V_prev=-32.0, V=-33.0)
        assert decision.spiked

    def test_refractory_countdown(self):
        """Test that detection is suppressed and r decrements while refractory."""
        decision = self.detector.step(r=3, V_prev=30.0, V=20.0)
        assert not decision.spiked
        assert decision.r == 2

        r = 20
        for _ in range(20):
            assert SpikeDetector.phase(r) is DetectorState.REFRACTORY
            r = self.detector.step(r, V_prev=30.0, V=20.0).r
        assert r == 0
        assert SpikeDetector.phase(r) is DetectorState.ACTIVE
        assert self.detector.step(r, V_prev=30.0, V=20.0).spiked
