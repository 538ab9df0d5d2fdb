# luckybet/inc/settings.py
# INI settings read with ConfigObj, overlaid from the environment and cast
# at read time.
from __future__ import annotations
import os
from pathlib import Path
from configobj import ConfigObj
from typing import Any, Callable, Dict, Mapping, Optional

CFG_PATH_DEFAULT = Path(
    os.getenv("LUCKYBET_CONFIG") or Path(os.getenv("HOME", "")) / ".config" / "luckybet.ini"
)
# LUCKYBET__<Section>__<key>=value
ENV_PREFIX = "LUCKYBET__"

TRUE_WORDS = ("1", "true", "yes", "on")


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in TRUE_WORDS


def _as_number(value: Any, kind: Callable[[str], Any], default: Any) -> Any:
    try:
        return kind(str(value).strip())
    except (TypeError, ValueError):
        return default


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Dict[str, str]]:
    """Collect `LUCKYBET__Section__key` variables as {section: {key: value}}."""
    found: Dict[str, Dict[str, str]] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        section, sep, key = name[len(ENV_PREFIX):].partition("__")
        if not sep or not section.strip() or not key.strip():
            continue
        found.setdefault(section.strip(), {})[key.strip()] = value
    return found


class Settings:
    """
    Read-only view over luckybet.ini. Values stay strings until `get` casts
    them, so environment overrides never need a type of their own.
    """

    def __init__(self, path: Path = CFG_PATH_DEFAULT, environ: Optional[Mapping[str, str]] = None):
        self.path = Path(path)
        if self.path.exists():
            self._cfg = ConfigObj(str(self.path), encoding="utf-8")
        else:
            self._cfg = ConfigObj(encoding="utf-8")
        overrides = env_overrides(os.environ if environ is None else environ)
        for section, values in overrides.items():
            self._cfg.setdefault(section, {})
            for key, value in values.items():
                self._cfg[section][key] = value

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "Settings":
        """In-memory settings, no file and no env overlay."""
        inst = cls.__new__(cls)
        inst.path = Path("<memory>")
        inst._cfg = ConfigObj(encoding="utf-8")
        for section, values in data.items():
            inst._cfg[section] = dict(values)
        return inst

    def get(self, dotted: str, default: Any = None, cast: Optional[Callable[[Any], Any]] = None) -> Any:
        """settings.get("SECTION.key", default, cast=int/float/bool)"""
        section, sep, key = dotted.partition(".")
        if not sep:
            return default
        value = self._cfg.get(section, {}).get(key)
        if value is None:
            return default
        if cast is None:
            return value
        if cast is bool:
            return _as_bool(value, bool(default))
        return _as_number(value, cast, default)


def load_settings(path: Path = CFG_PATH_DEFAULT) -> Settings:
    return Settings(path)
