"""
Settings for chorus_service.

Resolution order, later wins:

1. ``chorus_service/config/default.yml`` (package resource)
2. ``dev.yml`` next to it, unless ``CHORUS_IGNORE_DEV_CONFIG`` is truthy
3. ``CHORUS__SECTION__KEY=value`` environment variables, values parsed as YAML
"""
from importlib import resources
from typing import Any, Dict, Mapping, Optional
import os

import yaml

ENV_PREFIX = "CHORUS__"
CONFIG_PACKAGE = "chorus_service.config"

_TRUTHY = ("true", "1", "yes")


def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(a)
    for key, value in (b or {}).items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(resource) -> Dict[str, Any]:
    with resource.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _parse_env_value(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def apply_env_overrides(
    cfg: Dict[str, Any], environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX
) -> Dict[str, Any]:
    """Apply CHORUS__A__B=val -> cfg['a']['b']=parsed(val) in place and return cfg."""
    environ = os.environ if environ is None else environ
    for name, raw in environ.items():
        if not name.startswith(prefix):
            continue
        path = [p.strip().lower() for p in name[len(prefix):].split("__") if p.strip()]
        if not path:
            continue
        node = cfg
        for part in path[:-1]:
            # A scalar in the way is replaced by a section
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[path[-1]] = _parse_env_value(raw)
    return cfg


def _with_dev_overlay(cfg: Dict[str, Any], dev_file) -> Dict[str, Any]:
    if not dev_file.is_file():
        return cfg
    dev_cfg = _read_yaml(dev_file)
    # `_replaces_default: true` makes dev.yml the base instead of an overlay
    if dev_cfg.pop("_replaces_default", False):
        return dev_cfg
    return deep_merge(cfg, dev_cfg)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    config_dir = resources.files(CONFIG_PACKAGE)
    cfg = _read_yaml(config_dir / "default.yml")

    if environ.get("CHORUS_IGNORE_DEV_CONFIG", "false").lower() not in _TRUTHY:
        cfg = _with_dev_overlay(cfg, config_dir / "dev.yml")

    return apply_env_overrides(cfg, environ)


def get_limit(settings: Dict[str, Any], name: str, default: Any) -> Any:
    return (settings.get("limits", {}) or {}).get(name, default)
