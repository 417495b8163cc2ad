"""
Tests for settings loading.
"""

from pathlib import Path

from roomba_bridge.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.port == 3000
    assert settings.schedules.storage_path == Path("var") / "schedules.json"
    assert settings.schedules.strict_patch_validation is False
    assert settings.audit.enabled is True


def test_nested_environment_overrides(monkeypatch, tmp_path):
    """Test that nested settings are read with the double-underscore delimiter."""
    monkeypatch.setenv("SCHEDULES__STORAGE_PATH", str(tmp_path / "s.json"))
    monkeypatch.setenv("SCHEDULES__STRICT_PATCH_VALIDATION", "true")
    monkeypatch.setenv("PORT", "8080")

    settings = Settings(_env_file=None)

    assert settings.port == 8080
    assert settings.schedules.storage_path == tmp_path / "s.json"
    assert settings.schedules.strict_patch_validation is True
