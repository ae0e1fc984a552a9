"""
Configuration management for depscope.

Analysis settings come from keyword arguments, or from DEPSCOPE_* environment
variables via ``AnalysisConfig.from_env()``. The CLI loads a ``.env`` file
first, so the same variables can live there.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from depscope.errors import ConfigurationError

MAX_WORKERS_CAP = 8

DEFAULT_INCLUDE = ["*.py", "*.ts", "*.tsx", "*.js", "*.jsx", "*.mjs", "*.cjs"]
DEFAULT_EXCLUDE = [
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    "coverage",
    ".depscope_cache",
    "*.d.ts",
    "*.min.js",
]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_aliases(value: str) -> Dict[str, str]:
    """``"@/=src/,~=lib"`` → ``{"@/": "src/", "~": "lib"}``"""
    aliases = {}
    for item in _split_list(value):
        if "=" not in item:
            raise ConfigurationError(f"Alias must look like prefix=path, got {item!r}")
        prefix, target = item.split("=", 1)
        aliases[prefix.strip()] = target.strip()
    return aliases


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


@dataclass
class AnalysisConfig:
    """Settings for one ProjectAnalyzer."""

    project_path: str = "."
    include: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    parallel: bool = True
    max_workers: int = 4
    timeout: Optional[float] = None  # seconds for the whole batch
    cache_enabled: bool = True
    cache_max_size: int = 1000
    cache_ttl_ms: int = 3_600_000
    cache_dir: Optional[str] = None  # None: in-memory only
    aliases: Dict[str, str] = field(default_factory=dict)
    source_roots: List[str] = field(default_factory=lambda: ["", "src"])
    build_symbol_table: bool = True
    read_manifest: bool = True

    @classmethod
    def from_env(cls, project_path: Optional[str] = None) -> "AnalysisConfig":
        """Build a config from DEPSCOPE_* environment variables."""
        defaults = cls()
        include = os.getenv("DEPSCOPE_INCLUDE")
        exclude = os.getenv("DEPSCOPE_EXCLUDE")
        roots = os.getenv("DEPSCOPE_SOURCE_ROOTS")

        return cls(
            project_path=project_path or os.getenv("DEPSCOPE_PROJECT_PATH", "."),
            include=_split_list(include) if include else defaults.include,
            exclude=_split_list(exclude) if exclude else defaults.exclude,
            parallel=_env_bool("DEPSCOPE_PARALLEL", defaults.parallel),
            max_workers=_env_number("DEPSCOPE_MAX_WORKERS", defaults.max_workers, int),
            timeout=_env_number("DEPSCOPE_TIMEOUT", defaults.timeout, float),
            cache_enabled=_env_bool("DEPSCOPE_CACHE", defaults.cache_enabled),
            cache_max_size=_env_number("DEPSCOPE_CACHE_MAX_SIZE", defaults.cache_max_size, int),
            cache_ttl_ms=_env_number("DEPSCOPE_CACHE_TTL_MS", defaults.cache_ttl_ms, int),
            cache_dir=os.getenv("DEPSCOPE_CACHE_DIR") or None,
            aliases=_parse_aliases(os.getenv("DEPSCOPE_ALIASES", "")),
            # "." stands for the project root itself
            source_roots=[("" if r == "." else r) for r in _split_list(roots)] if roots else defaults.source_roots,
            build_symbol_table=_env_bool("DEPSCOPE_SYMBOLS", defaults.build_symbol_table),
            read_manifest=_env_bool("DEPSCOPE_READ_MANIFEST", defaults.read_manifest),
        )

    @property
    def effective_workers(self) -> int:
        """Worker count actually used (capped at 8, 1 when sequential)."""
        return min(self.max_workers, MAX_WORKERS_CAP) if self.parallel else 1

    def validate(self) -> None:
        """Raise ConfigurationError if any setting is unusable."""
        root = Path(self.project_path)
        if not root.exists():
            raise ConfigurationError(f"Project path does not exist: {self.project_path}")
        if not root.is_dir():
            raise ConfigurationError(f"Project path is not a directory: {self.project_path}")
        if not self.include:
            raise ConfigurationError("At least one include pattern is required")
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout!r}")
        if self.cache_max_size < 1:
            raise ConfigurationError(f"cache_max_size must be >= 1, got {self.cache_max_size!r}")
        if self.cache_ttl_ms < 0:
            raise ConfigurationError(f"cache_ttl_ms must be >= 0, got {self.cache_ttl_ms!r}")

    def with_changes(self, **changes) -> "AnalysisConfig":
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")
        return replace(self, **changes)
