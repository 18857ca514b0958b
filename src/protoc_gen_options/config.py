from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Dict, Optional

PATHS_IMPORT = "import"
PATHS_SOURCE_RELATIVE = "source_relative"

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class ConfigError(Exception):
    """Raised when the plugin parameter string cannot be understood."""


@dataclass(frozen=True)
class GeneratorConfig:
    """Settings for one generation run.

    Passed explicitly to every stage, so concurrent runs never share state.
    """

    debug: bool = False
    paths: str = PATHS_IMPORT
    module: Optional[str] = None
    suffix: str = "_options.go"
    optionless_marker: str = "@optionless"
    skip_init_marker: str = "@skip-init"


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"Invalid boolean for '{key}': {value!r}")


def parse_parameter(parameter: str, base: Optional[GeneratorConfig] = None) -> GeneratorConfig:
    """Parse a protoc parameter string such as ``debug=true,paths=source_relative``.

    A bare key (``debug``) is shorthand for ``debug=true``.
    """
    config = base or GeneratorConfig()
    known = {f.name: f for f in fields(GeneratorConfig)}
    updates: Dict[str, object] = {}

    for item in parameter.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        key = key.strip()
        value = value.strip()
        if key not in known:
            raise ConfigError(
                f"Unknown parameter '{key}'. Known parameters: {sorted(known)}"
            )
        if key == "debug":
            updates[key] = _parse_bool(key, value) if sep else True
        elif not sep or not value:
            raise ConfigError(f"Parameter '{key}' requires a value")
        else:
            updates[key] = value

    paths = updates.get("paths", config.paths)
    if paths not in (PATHS_IMPORT, PATHS_SOURCE_RELATIVE):
        raise ConfigError(
            f"Invalid value for 'paths': {paths!r} "
            f"(expected '{PATHS_IMPORT}' or '{PATHS_SOURCE_RELATIVE}')"
        )

    return replace(config, **updates)
