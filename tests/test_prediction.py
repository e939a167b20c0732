"""
Tests for the detect -> learn -> apply prediction workflow.
"""

from datetime import timedelta

import pytest

from frac_bd.config import MONITORED_CHANNELS, DetectionSettings
from frac_bd.detection import detect_breakdowns
from frac_bd.errors import NotAnalyzedError, SignatureNotLearnedError
from frac_bd.prediction import (
    FracturePredictionModule,
    PredictionResult,
    PredictionSession,
    apply_to_new_dataset,
    breakdowns_frame,
    compare_methods,
    detect_all,
    learn_favorable_conditions,
    trend_breakdowns,
)
from frac_bd.signatures import SlopeSignature

from conftest import BASE_TIME, build_stage, step_pressure


SLOPES = {
    "TrPress": 2.0, "AnPress": -1.0, "BhPress": 0.5, "SlurRate": 0.25,
    "PropCon": 0.125, "BhPropCon": 4.0, "NetPress": -3.0,
}


def trending_stage(name="trending", n=100):
    """Every monitored channel follows its SLOPES entry"""
    return build_stage(
        name,
        n=n,
        extra=lambda i: {c: 1000.0 + slope * i for c, slope in SLOPES.items()},
    )


def step_stages(count=3):
    return {
        f"stage_{i}": build_stage(f"stage_{i}", pressure=step_pressure(100))
        for i in range(count)
    }


class TestDetectAll:
    """Test batch detection"""

    def test_results_keyed_by_name(self, step_stage, flat_stage):
        """Test results keyed by dataset name"""
        session = detect_all([step_stage, flat_stage], max_workers=1)

        assert list(session.breakdowns) == ["stage_step", "stage_flat"]
        assert session.breakdowns["stage_step"] == (BASE_TIME + timedelta(seconds=100),)
        assert session.breakdowns["stage_flat"] == ()
        assert session.favorable is None

    def test_parallel_matches_sequential(self):
        """Test that parallel detection matches sequential"""
        stages = step_stages(4)
        sequential = detect_all(stages, max_workers=1)
        parallel = detect_all(stages, max_workers=2)

        assert dict(parallel.breakdowns) == dict(sequential.breakdowns)
        assert list(parallel.breakdowns) == list(stages)

    def test_settings_are_applied(self, step_stage):
        """Test that custom settings reach the detector"""
        session = detect_all({"s": step_stage}, DetectionSettings(min_rate_threshold=50.0), max_workers=1)
        assert session.breakdowns["s"] == ()

    def test_session_is_immutable(self, step_stage):
        """Test that sessions are read-only"""
        session = detect_all([step_stage], max_workers=1)
        with pytest.raises(TypeError):
            session.breakdowns["other"] = ()


class TestLearnFavorableConditions:
    """Test favorable signature learning"""

    def test_requires_detection(self, step_stage):
        """Test learning without detections"""
        with pytest.raises(NotAnalyzedError):
            learn_favorable_conditions(PredictionSession(), {"stage_step": step_stage})

    def test_requires_detection_for_given_datasets(self, step_stage, flat_stage):
        """Test learning from datasets with no stored detections"""
        session = detect_all([flat_stage], max_workers=1)
        with pytest.raises(NotAnalyzedError):
            learn_favorable_conditions(session, [step_stage])

    def test_identical_datasets_give_single_signature(self):
        """Test averaging over identical datasets"""
        stages = step_stages(3)
        session = learn_favorable_conditions(detect_all(stages, max_workers=1), stages)

        single = learn_favorable_conditions(
            detect_all({"stage_0": stages["stage_0"]}, max_workers=1),
            {"stage_0": stages["stage_0"]},
        )
        assert set(session.favorable) == set(MONITORED_CHANNELS)
        for channel in MONITORED_CHANNELS:
            assert session.favorable[channel] == pytest.approx(single.favorable[channel])

    def test_learned_shape(self, step_stage):
        """Test the learned signature channels"""
        session = learn_favorable_conditions(detect_all([step_stage], max_workers=1), [step_stage])

        # Pressure drops at the end of the 30 s lookback, everything else is flat
        assert session.favorable["BhPress"] < 0
        assert session.favorable["TrPress"] == pytest.approx(0.0, abs=1e-12)
        assert session.breakdowns == detect_all([step_stage], max_workers=1).breakdowns

    def test_unanalyzed_datasets_are_skipped(self, step_stage, flat_stage):
        """Test that unanalyzed datasets are skipped"""
        session = detect_all([step_stage], max_workers=1)
        learned = learn_favorable_conditions(session, [step_stage, flat_stage])
        assert learned.is_learned

    def test_original_session_unchanged(self, step_stage):
        """Test that learning returns a new session"""
        session = detect_all([step_stage], max_workers=1)
        learn_favorable_conditions(session, [step_stage])
        assert session.favorable is None


class TestApplyToNewDataset:
    """Test physics and trend predictions on a new dataset"""

    def test_fresh_session_fails(self, step_stage):
        """Test applying a fresh session"""
        with pytest.raises(SignatureNotLearnedError):
            apply_to_new_dataset(PredictionSession(), step_stage)

    def test_empty_signature_fails(self, step_stage):
        """Test applying an empty signature"""
        session = PredictionSession(favorable=SlopeSignature())
        with pytest.raises(SignatureNotLearnedError):
            apply_to_new_dataset(session, step_stage)

    def test_every_matching_window_predicts(self):
        """Trend predictions are not debounced"""
        stage = trending_stage(n=100)
        predictions = trend_breakdowns(stage, SlopeSignature(SLOPES))

        # Readings 1..69 have a 2+ point window and a reading 30 s later
        assert len(predictions) == 69
        assert predictions[0] == BASE_TIME + timedelta(seconds=31)
        assert predictions[-1] == BASE_TIME + timedelta(seconds=99)

    def test_dissimilar_signature_predicts_nothing(self):
        """Test that a dissimilar signature predicts nothing"""
        stage = trending_stage(n=100)
        favorable = SlopeSignature({c: slope * 10 for c, slope in SLOPES.items()})
        assert trend_breakdowns(stage, favorable) == []

    def test_physics_events_match_detector(self, step_stage):
        """Test that physics events match the detector"""
        session = PredictionSession(favorable=SlopeSignature(SLOPES))
        result = apply_to_new_dataset(session, step_stage)

        assert isinstance(result, PredictionResult)
        assert result.physics_events == detect_breakdowns(step_stage)

    def test_detection_settings_carry_through_session(self):
        """Physics detection on the new dataset reuses the session's settings"""
        custom = DetectionSettings(min_rate_threshold=5.0)
        history = step_stages(2)
        slow_stage = build_stage("slow", rate=3.0, pressure=step_pressure(100))

        session = learn_favorable_conditions(detect_all(history, custom, max_workers=1), history)
        assert session.settings == custom
        assert session.is_learned

        result = apply_to_new_dataset(session, slow_stage)
        assert result.physics_events == detect_breakdowns(slow_stage, custom) == []

        # Explicit settings still take precedence
        result = apply_to_new_dataset(session, slow_stage, DetectionSettings())
        assert result.physics_events == [BASE_TIME + timedelta(seconds=100)]


class TestFracturePredictionModule:
    """Test the stateful workflow wrapper"""

    def test_full_workflow(self, step_stage):
        """Test detect, learn and apply through the wrapper"""
        module = FracturePredictionModule(max_workers=1)
        stages = step_stages(2)

        detected = module.detect_breakdowns_for_datasets(stages)
        assert all(len(events) == 1 for events in detected.values())

        favorable = module.analyze_favorable_conditions(stages)
        assert favorable == module.favorable_conditions

        physics, trend = module.apply_conditions_to_new_dataset(step_stage)
        assert physics == [BASE_TIME + timedelta(seconds=100)]
        assert all(t >= BASE_TIME + timedelta(seconds=30) for t in trend)

    def test_apply_before_learning_fails(self, step_stage):
        """Test applying before learning"""
        module = FracturePredictionModule(max_workers=1)
        module.detect_breakdowns_for_datasets([step_stage])
        with pytest.raises(SignatureNotLearnedError):
            module.apply_conditions_to_new_dataset(step_stage)

    def test_detection_replaces_previous_results(self, step_stage, flat_stage):
        """Test that detection resets the session"""
        module = FracturePredictionModule(max_workers=1)
        module.detect_breakdowns_for_datasets([step_stage])
        module.analyze_favorable_conditions([step_stage])

        module.detect_breakdowns_for_datasets([flat_stage])
        assert list(module.detected_breakdowns) == ["stage_flat"]
        assert module.favorable_conditions is None


class TestReporting:
    """Test result summaries"""

    def test_compare_methods(self):
        """Test Hausdorff comparison of both methods"""
        result = PredictionResult(
            [BASE_TIME, BASE_TIME + timedelta(minutes=5)],
            [BASE_TIME + timedelta(seconds=2), BASE_TIME + timedelta(minutes=6)],
        )
        assert compare_methods(result) == pytest.approx(60.0)

    def test_compare_methods_without_events(self):
        """Test comparison when one method found nothing"""
        assert compare_methods(PredictionResult([BASE_TIME], [])) is None

    def test_breakdowns_frame(self, step_stage, flat_stage):
        """Test the breakdown summary frame"""
        frame = breakdowns_frame(detect_all([step_stage, flat_stage], max_workers=1))
        assert list(frame.columns) == ["dataset", "event_index", "time"]
        assert len(frame) == 1
        assert frame.iloc[0]["dataset"] == "stage_step"
