"""Tests for settings loading and the performance counters."""

import pytest
from pydantic import ValidationError

from canvasloom.core.config import PipelineSettings, load_settings
from canvasloom.core.pipeline import PerformanceMetrics


class TestLoadSettings:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CANVASLOOM_CACHE_MAX_ENTRIES", raising=False)
        settings = load_settings(tmp_path / "absent.yaml")

        assert settings.cache_max_entries == 100
        assert settings.default_timeout_ms == 5000
        assert settings.shim_base_url == "http://localhost:5173"
        assert "esm.sh" in settings.trusted_domains

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "canvasloom.yaml"
        path.write_text("cache_max_entries: 12\nmirror_host: mirror.test\n", encoding="utf-8")

        settings = load_settings(path)

        assert settings.cache_max_entries == 12
        assert settings.mirror_host == "mirror.test"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "canvasloom.yaml"
        path.write_text("cache_max_entries: 12\n", encoding="utf-8")
        monkeypatch.setenv("CANVASLOOM_CACHE_MAX_ENTRIES", "7")
        monkeypatch.setenv("CANVASLOOM_TRUSTED_DOMAINS", "a.test, b.test")

        settings = load_settings(path)

        assert settings.cache_max_entries == 7
        assert settings.trusted_domains == ["a.test", "b.test"]

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "canvasloom.yaml"
        path.write_text("cache_max_entries: [unclosed\n", encoding="utf-8")

        assert load_settings(path).cache_max_entries == 100

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            PipelineSettings(cache_max_entries=0)
        with pytest.raises(ValidationError):
            PipelineSettings(cache_prune_fraction=1.5)


class TestPerformanceMetrics:
    def test_summary(self):
        metrics = PerformanceMetrics()
        for value in (10, 20, 30):
            metrics.record("esm_processing_time", value)

        summary = metrics.summary()["esm_processing_time"]
        assert summary == {"count": 3, "sum": 60, "average": 20, "median": 20, "min": 10, "max": 30}

    def test_window(self):
        metrics = PerformanceMetrics(window=2)
        for value in (1, 2, 3):
            metrics.record("x", value)

        assert metrics.count("x") == 2
        assert metrics.summary()["x"]["min"] == 2

    def test_cache_hit_rate(self):
        metrics = PerformanceMetrics()
        for _ in range(4):
            metrics.record("successful_compilations")
        metrics.record("cache_hit")

        assert metrics.summary()["cache_hit_rate"] == 25.0

    def test_reset(self):
        metrics = PerformanceMetrics()
        metrics.record("x")
        metrics.reset()

        assert metrics.summary() == {}
