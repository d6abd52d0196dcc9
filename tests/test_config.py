"""Tests for configuration loading."""

import json

import pytest

from chromakeys.config import EngineConfig, SmoothingRates, load_config


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.field.grid_size == 128
        assert config.attractor.retention == 0.92
        assert config.seed is None

    def test_sections_are_per_instance(self):
        a, b = EngineConfig(), EngineConfig()
        a.field.grid_size = 32
        assert b.field.grid_size == 128
        assert a.preview is not b.preview

    def test_nested_overrides(self):
        config = EngineConfig.from_dict({
            "field": {"grid_size": 64},
            "motion": {"mirror": False, "head_rows": [0.1, 0.9]},
            "seed": 3,
        })
        assert config.field.grid_size == 64
        assert config.motion.mirror is False
        assert config.motion.head_rows == (0.1, 0.9)
        assert config.seed == 3
        assert config.field.damping == 0.97

    def test_unknown_key_raises(self):
        with pytest.raises(ValueError, match="field.bogus"):
            EngineConfig.from_dict({"field": {"bogus": 1}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            EngineConfig.from_dict({"field": 64})

    def test_rate_lookup(self):
        assert SmoothingRates().rate_for("rotation") == 0.13


class TestLoadConfig:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"idle": {"rest_sec": 1.0}}))
        assert load_config(path).idle.rest_sec == 1.0

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(path)
