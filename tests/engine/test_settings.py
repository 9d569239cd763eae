from __future__ import annotations

from tsrf.engine.settings import SyncOptions, TsrfSettings, get_settings


def test_settings_from_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TSRF_ROOT", str(tmp_path))
    monkeypatch.setenv("TSRF_SHOW_REDUNDANT", "true")
    monkeypatch.setenv("TSRF_VERBOSE", "1")

    settings = get_settings()
    options = settings.to_options()

    assert settings.resolve_log_level() == "DEBUG"
    assert options.root == tmp_path.resolve()
    assert options.show_redundant is True
    assert options.prune_redundant is False
    assert options.compiler_command == "tsc --build --watch --pretty"


def test_with_overrides_skips_none(tmp_path) -> None:
    options = TsrfSettings(root=tmp_path, show_redundant=True).to_options()

    updated = options.with_overrides(show_redundant=None, spawn_compiler=False)

    assert updated.show_redundant is True
    assert updated.spawn_compiler is False
    assert options.spawn_compiler is True
    assert isinstance(updated, SyncOptions)
