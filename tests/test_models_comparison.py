"""Tests for comparison verdicts, run summaries and capture manifests."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from visual_testing.models.capture import CaptureManifest, CaptureRecord
from visual_testing.models.comparison import ComparisonVerdict, RunSummary
from visual_testing.models.device import DeviceSession, LifecycleState
from visual_testing.reporter.summary import summarize


def _make_verdict(scene_id="button--primary", **kwargs) -> ComparisonVerdict:
    defaults = dict(
        baseline_path=f"/baselines/{scene_id}.png",
        current_path=f"/shots/{scene_id}.png",
        pixel_diff_percent=0.0,
        similarity_score=1.0,
        backend="pixel",
    )
    defaults.update(kwargs)
    return ComparisonVerdict(scene_id=scene_id, **defaults)


class TestComparisonVerdict:
    """Tests for ComparisonVerdict model."""

    def test_new_scene_factory(self):
        verdict = ComparisonVerdict.new_scene("card--default", "/shots/card--default.png")
        assert verdict.is_new
        assert verdict.has_difference
        assert verdict.pixel_diff_percent == 100.0
        assert verdict.similarity_score == 0.0
        assert verdict.baseline_path is None
        assert verdict.backend is None
        assert verdict.status == "changed"

    def test_new_scene_invariant_enforced(self):
        with pytest.raises(ValidationError):
            ComparisonVerdict(
                scene_id="card--default",
                is_new=True,
                has_difference=True,
                pixel_diff_percent=50.0,
                similarity_score=0.0,
            )

    def test_percent_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            _make_verdict(pixel_diff_percent=120.0)

    def test_similarity_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            _make_verdict(similarity_score=1.2)

    def test_verdict_is_frozen(self):
        verdict = _make_verdict()
        with pytest.raises(ValidationError):
            verdict.has_difference = True

    def test_status(self):
        assert _make_verdict().status == "passed"
        assert _make_verdict(has_difference=True, pixel_diff_percent=4.0).status == "changed"
        assert _make_verdict(failure_reason="boom").status == "failed"
        assert _make_verdict(failure_reason="boom").failed

    def test_json_uses_camel_case(self):
        data = _make_verdict(render_duration_millis=120).to_json_dict()
        assert data["sceneId"] == "button--primary"
        assert data["pixelDiffPercent"] == 0.0
        assert data["similarityScore"] == 1.0
        assert data["renderDurationMillis"] == 120
        assert "scene_id" not in data


class TestRunSummary:
    """Tests for summarize() and RunSummary persistence."""

    def test_summarize_counts(self):
        verdicts = [
            _make_verdict("a--one"),
            _make_verdict("b--two", has_difference=True, pixel_diff_percent=3.0, similarity_score=0.9),
            ComparisonVerdict.new_scene("c--three", "/shots/c--three.png"),
            _make_verdict("d--four", failure_reason="Image dimensions don't match"),
        ]
        summary = summarize(verdicts, "main", "feature")

        assert summary.total_scenes == 4
        assert summary.passed_count == 1
        assert summary.changed_count == 2
        assert summary.failed_count == 1
        assert summary.compared_count == 3
        assert summary.has_changes
        assert [v.scene_id for v in summary.results] == ["a--one", "b--two", "c--three", "d--four"]

    def test_counts_always_sum_to_total(self):
        verdicts = [_make_verdict(f"s--{i}") for i in range(5)]
        summary = summarize(verdicts, "main", "feature")
        assert summary.passed_count + summary.changed_count + summary.failed_count == summary.total_scenes
        assert not summary.has_changes

    def test_save_and_load(self, tmp_path: Path):
        summary = summarize([_make_verdict()], "main", "feature")
        path = tmp_path / "out" / "comparison-results.json"
        summary.save(path)

        data = json.loads(path.read_text())
        assert data["baseBranch"] == "main"
        assert data["currentBranch"] == "feature"
        assert data["results"][0]["sceneId"] == "button--primary"

        loaded = RunSummary.load(path)
        assert loaded == summary


class TestCaptureManifest:
    """Tests for CaptureRecord and CaptureManifest."""

    def test_record_succeeded(self):
        ok = CaptureRecord(scene_id="a", image_path="/x/a.png", branch="main", captured_at_epoch_millis=1)
        failed = CaptureRecord(scene_id="b", branch="main", captured_at_epoch_millis=1,
                               failure_reason="timeout")
        assert ok.succeeded
        assert not failed.succeeded

    def test_manifest_round_trip(self, tmp_path: Path):
        manifest = CaptureManifest(
            branch="main",
            commit_hash="abc",
            timestamp=1,
            screenshots=[CaptureRecord(scene_id="a", image_path="/x/a.png", branch="main",
                                       captured_at_epoch_millis=1)],
            total_scenes=1,
            captured_count=1,
        )
        path = tmp_path / "metadata.json"
        manifest.save(path)
        assert json.loads(path.read_text())["screenshots"][0]["imagePath"] == "/x/a.png"
        assert CaptureManifest.load(path) == manifest


class TestDeviceSession:
    """Tests for LifecycleState parsing and DeviceSession transitions."""

    @pytest.mark.parametrize("raw,expected", [
        ("Booted", LifecycleState.BOOTED),
        ("Shutdown", LifecycleState.SHUTDOWN),
        ("Shutting Down", LifecycleState.SHUTTING_DOWN),
        ("Creating", LifecycleState.UNKNOWN),
        (None, LifecycleState.UNKNOWN),
    ])
    def test_parse(self, raw, expected):
        assert LifecycleState.parse(raw) == expected

    def test_transition_history(self):
        session = DeviceSession(handle="udid", display_name="iPhone")
        session.transition(LifecycleState.BOOTING)
        session.transition(LifecycleState.BOOTED)
        assert session.is_booted
        assert session.transitions == [LifecycleState.BOOTING, LifecycleState.BOOTED]
