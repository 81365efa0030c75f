"""
Compiler options, loadable from a YAML file.
"""
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml


def debug_enabled() -> bool:
    """True when the GRAVEL_DEBUG environment variable is set."""
    return bool(os.environ.get("GRAVEL_DEBUG"))


@dataclass
class CompilerOptions:
    precision: int = 10
    indent_width: int = 2
    max_call_depth: int = 40
    debug: bool = False

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type is bool:
                if not isinstance(value, bool):
                    raise ValueError(f"{f.name} must be a boolean, not {value!r}")
            # bool is an int subclass; `precision: true` is still a mistake.
            elif not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{f.name} must be an integer, not {value!r}")
        if self.precision < 0:
            raise ValueError("precision must not be negative")
        if self.indent_width < 0:
            raise ValueError("indent_width must not be negative")
        if self.max_call_depth < 1:
            raise ValueError("max_call_depth must be at least 1")
        if debug_enabled():
            self.debug = True

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'CompilerOptions':
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in data if k.replace('-', '_') not in known)
        if unknown:
            raise ValueError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**{k.replace('-', '_'): v for k, v in data.items()})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'CompilerOptions':
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"{path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of options")
        return cls.from_mapping(data)
