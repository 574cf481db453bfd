from chorus_service.core.config import apply_env_overrides, deep_merge, get_limit, load_settings


def test_deep_merge_nested():
    base = {"a": {"b": 1, "c": 2}, "x": 1}
    out = deep_merge(base, {"a": {"c": 3}, "y": 2})
    assert out == {"a": {"b": 1, "c": 3}, "x": 1, "y": 2}
    assert base["a"]["c"] == 2


def test_env_overrides_parse_yaml_values():
    cfg = {"limits": {"max_tool_rounds": 5}}
    env = {
        "CHORUS__LIMITS__MAX_TOOL_ROUNDS": "2",
        "CHORUS__CHAT__CANCELLED_SUFFIX": " (stopped)",
        "CHORUS__TOOLS__ENABLED": "[a, b]",
        "UNRELATED": "x",
    }
    apply_env_overrides(cfg, environ=env)
    assert cfg["limits"]["max_tool_rounds"] == 2
    assert cfg["chat"]["cancelled_suffix"].strip() == "(stopped)"
    assert cfg["tools"]["enabled"] == ["a", "b"]
    assert "unrelated" not in cfg


def test_load_settings_defaults(monkeypatch):
    monkeypatch.setenv("CHORUS_IGNORE_DEV_CONFIG", "1")
    monkeypatch.setenv("CHORUS__LIMITS__TOOL_TIMEOUT_SEC", "3")
    cfg = load_settings()
    assert cfg["providers"]["model"]["impl"].endswith("DummyProvider")
    assert "convert_temperature" in cfg["tools"]["enabled"]
    assert get_limit(cfg, "max_tool_rounds", 0) == 5
    assert get_limit(cfg, "tool_timeout_sec", 0) == 3
    assert get_limit(cfg, "missing", "fallback") == "fallback"


def test_load_settings_with_explicit_environ():
    cfg = load_settings(environ={"CHORUS_IGNORE_DEV_CONFIG": "yes", "CHORUS__APP__API__PORT": "9000"})
    assert cfg["app"]["api"]["port"] == 9000
    assert cfg["app"]["api"]["host"] == "127.0.0.1"


def test_env_override_replaces_scalar_with_section():
    cfg = apply_env_overrides({"chat": "plain"}, environ={"CHORUS__CHAT__SYSTEM_PROMPT": "Hi"})
    assert cfg == {"chat": {"system_prompt": "Hi"}}
