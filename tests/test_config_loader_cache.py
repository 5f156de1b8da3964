from expo_mcp.config import loader
from expo_mcp.config.schema import Config


def test_get_config_uses_cache_and_force_reload(monkeypatch):
    calls = {"n": 0}

    def _fake_load_config(_path=None):
        calls["n"] += 1
        cfg = Config()
        cfg.expo.port = 18000 + calls["n"]
        return cfg

    monkeypatch.setattr(loader, "load_config", _fake_load_config)
    loader.clear_config_cache()

    first = loader.get_config()
    second = loader.get_config()
    third = loader.get_config(force_reload=True)

    assert first.expo.port == second.expo.port
    assert third.expo.port != second.expo.port
    assert calls["n"] == 2
    loader.clear_config_cache()


def test_cache_is_keyed_by_path(monkeypatch, tmp_path):
    seen = []

    def _fake_load_config(path=None):
        seen.append(path)
        return Config()

    monkeypatch.setattr(loader, "load_config", _fake_load_config)
    loader.clear_config_cache()

    a = tmp_path / "a.json"
    b = tmp_path / "b.json"
    loader.get_config(config_path=a)
    loader.get_config(config_path=b)
    loader.get_config(config_path=a)
    assert seen == [a.resolve(), b.resolve()]

    loader.clear_config_cache(config_path=a)
    loader.get_config(config_path=a)
    loader.get_config(config_path=b)
    assert len(seen) == 3
    loader.clear_config_cache()
