"""Tests for the headless session CLI."""

import json

import pytest

from chromakeys.cli import (
    ScoreEvent,
    apply_event,
    build_parser,
    main,
    make_config,
    parse_score,
    random_score,
)
from chromakeys.core.grid import GRID_COLS, GRID_ROWS


class TestScore:
    def test_parse_sorts_and_schedules_release(self):
        events = parse_score({"events": [
            {"time": 1.0, "type": "drum", "index": 2},
            {"time": 0.5, "type": "cell", "col": 3, "row": 1, "hold": 0.25},
        ]})
        assert [(e.time, e.type) for e in events] == [(0.5, "cell"), (0.75, "release"), (1.0, "drum")]
        assert events[1].args == {"col": 3, "row": 1}

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            parse_score({"events": [{"time": 0, "type": "explode"}]})

    def test_empty_score(self):
        assert parse_score({}) == []

    def test_random_score_deterministic(self):
        a = random_score(5.0, 3.0, seed=4)
        b = random_score(5.0, 3.0, seed=4)
        assert [(e.time, e.type, e.args) for e in a] == [(e.time, e.type, e.args) for e in b]
        assert a == sorted(a)

    def test_random_score_on_grid(self):
        for event in random_score(10.0, 4.0, seed=1):
            if event.type in ("cell", "release"):
                assert 0 <= event.args["col"] < GRID_COLS
                assert 0 <= event.args["row"] < GRID_ROWS
            assert event.time < 10.0 + 0.8


class TestApplyEvent:
    def test_cell_and_release(self, engine):
        apply_event(engine, ScoreEvent(0.0, "cell", {"col": 2, "row": 0}))
        assert (2, 0) in engine.held
        apply_event(engine, ScoreEvent(0.1, "release", {"col": 2, "row": 0}))
        assert not engine.held

    def test_modes(self, engine):
        apply_event(engine, ScoreEvent(0.0, "pedal", {"down": True}))
        assert engine.sustain_pedal
        apply_event(engine, ScoreEvent(0.0, "zoom", {"steps": 4}))
        assert engine.zoom == pytest.approx(1.2)
        apply_event(engine, ScoreEvent(0.0, "arp", {}))
        assert engine.arpeggiator.enabled
        apply_event(engine, ScoreEvent(0.0, "note", {"midi": 64}))
        assert (engine.attractor.col, engine.attractor.row) == (3, 1)


class TestConfig:
    def test_profile_applied(self):
        args = build_parser().parse_args(["-p", "low", "--seed", "9", "--no-glow"])
        config = make_config(args)
        assert config.field.grid_size == 64
        assert (config.preview.width, config.preview.height) == (320, 180)
        assert config.preview.fps == 30
        assert config.preview.glow_enabled is False
        assert config.seed == 9

    def test_fps_override(self):
        config = make_config(build_parser().parse_args(["-p", "high", "-f", "24"]))
        assert config.preview.fps == 24


class TestMain:
    def test_random_session(self, tmp_path):
        out = tmp_path / "session.json"
        main(["-d", "0.2", "-p", "low", "--seed", "1", "-o", str(out), "--npz"])
        session = json.loads(out.read_text())
        assert session["metadata"]["n_frames"] == 6
        assert session["metadata"]["fps"] == 30
        assert out.with_suffix(".npz").exists()

    def test_scored_session_with_frames(self, tmp_path):
        score = tmp_path / "score.json"
        score.write_text(json.dumps({"events": [
            {"time": 0.0, "type": "cell", "col": 3, "row": 1, "hold": 0.1},
            {"time": 0.1, "type": "burst", "col": 7, "row": 0},
        ]}))
        out = tmp_path / "session.json"
        frames = tmp_path / "frames"
        main([str(score), "-d", "0.2", "-p", "low", "-o", str(out),
              "--frames-dir", str(frames), "--png-every", "2"])
        session = json.loads(out.read_text())
        assert session["frames"][0]["attractor"]["col"] == 3
        assert session["frames"][-1]["attractor"]["col"] == 7
        assert len(list(frames.glob("*.png"))) == 3

    def test_missing_score_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([str(tmp_path / "nope.json")])
        assert exc.value.code == 1

    def test_bad_score_exits(self, tmp_path):
        score = tmp_path / "score.json"
        score.write_text(json.dumps({"events": [{"time": 0, "type": "explode"}]}))
        with pytest.raises(SystemExit) as exc:
            main([str(score), "-o", str(tmp_path / "s.json")])
        assert exc.value.code == 1
