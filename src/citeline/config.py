"""citeline configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CITELINE_GENERATION_MODEL, CITELINE_VISION_MODEL,
                             CITELINE_EMBEDDING_MODEL, CITELINE_LOG_LEVEL)
  3. Per-project citeline.yaml
  4. Global ~/.citeline/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from citeline.errors import ConfigError
from citeline.logging_setup import parse_level

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".citeline"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "citeline.yaml"

DEFAULT_FAVICON_TEMPLATE = "https://www.google.com/s2/favicons?domain={domain}&sz=32"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["index", "retrieval", "vision", "generation", "citations", "logging"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class IndexCfg:
    """Knowledge index storage (citeline.yaml: index:)."""

    db_path: str = ".citeline.db"
    embedding_model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    chunk_size: int = 512
    overlap: float = 0.10


@dataclass
class RetrievalCfg:
    """Retrieval injection budgets (citeline.yaml: retrieval:).

    Attributes:
        max_results: Hits requested from the resolved index.
        max_excerpt_chars: Combined character budget for injected excerpts.
        max_query_chars: Longest query sent to the index.
        timeout_seconds: Bound on each index call; a timeout counts as a failure.
        fallback_window_minutes: How recent a sibling thread upload must be to
            be searched when the resolved index has no hits.
        fallback_limit: Maximum number of sibling indexes searched.
        fallback_max_results: Hits requested from each sibling index.
    """

    max_results: int = 10
    max_excerpt_chars: int = 8_000
    max_query_chars: int = 4_000
    timeout_seconds: float = 5.0
    fallback_window_minutes: int = 10
    fallback_limit: int = 5
    fallback_max_results: int = 5


@dataclass
class VisionCfg:
    """Image reasoning endpoint (citeline.yaml: vision:)."""

    model: str = "openai/gpt-4o"
    max_tokens: int = 2_000
    temperature: float = 0.7
    timeout_seconds: float = 30.0


@dataclass
class GenerationCfg:
    """Chat model used for the turn itself (citeline.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    max_tokens: int = 2_048
    temperature: float = 0.7


@dataclass
class CitationsCfg:
    """Citation list display (citeline.yaml: citations:)."""

    max_sources: int = 7
    favicon_template: str = DEFAULT_FAVICON_TEMPLATE


@dataclass
class LoggingCfg:
    level: str = "warning"


@dataclass
class CitelineConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    index: IndexCfg = field(default_factory=IndexCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    vision: VisionCfg = field(default_factory=VisionCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    citations: CitationsCfg = field(default_factory=CitationsCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CitelineConfig) -> None:
    """Raise ConfigError for budgets that would disable a component silently."""
    positive = {
        "index.dimensions": cfg.index.dimensions,
        "index.chunk_size": cfg.index.chunk_size,
        "retrieval.max_results": cfg.retrieval.max_results,
        "retrieval.max_excerpt_chars": cfg.retrieval.max_excerpt_chars,
        "retrieval.max_query_chars": cfg.retrieval.max_query_chars,
        "retrieval.timeout_seconds": cfg.retrieval.timeout_seconds,
        "vision.max_tokens": cfg.vision.max_tokens,
        "vision.timeout_seconds": cfg.vision.timeout_seconds,
        "citations.max_sources": cfg.citations.max_sources,
    }
    for name, value in positive.items():
        if value <= 0:
            raise ConfigError(f"{name} must be > 0, got {value}")
    if not 0.0 <= cfg.index.overlap < 1.0:
        raise ConfigError(f"index.overlap must be in [0.0, 1.0), got {cfg.index.overlap}")
    if "{domain}" not in cfg.citations.favicon_template:
        raise ConfigError(
            "citations.favicon_template must contain the '{domain}' placeholder.\n"
            f"  Example: {DEFAULT_FAVICON_TEMPLATE}"
        )
    try:
        parse_level(cfg.logging.level)
    except ValueError as exc:
        raise ConfigError(f"logging.level: {exc}") from None


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> CitelineConfig:
    """Build a *CitelineConfig* from a merged raw YAML dict."""
    cfg = CitelineConfig()

    if "index" in data:
        i = data["index"] or {}
        cfg.index = IndexCfg(
            db_path=str(i.get("db_path", cfg.index.db_path)),
            embedding_model=str(i.get("embedding_model", cfg.index.embedding_model)),
            dimensions=int(i.get("dimensions", cfg.index.dimensions)),
            chunk_size=int(i.get("chunk_size", cfg.index.chunk_size)),
            overlap=float(i.get("overlap", cfg.index.overlap)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            max_results=int(r.get("max_results", d.max_results)),
            max_excerpt_chars=int(r.get("max_excerpt_chars", d.max_excerpt_chars)),
            max_query_chars=int(r.get("max_query_chars", d.max_query_chars)),
            timeout_seconds=float(r.get("timeout_seconds", d.timeout_seconds)),
            fallback_window_minutes=int(
                r.get("fallback_window_minutes", d.fallback_window_minutes)
            ),
            fallback_limit=int(r.get("fallback_limit", d.fallback_limit)),
            fallback_max_results=int(r.get("fallback_max_results", d.fallback_max_results)),
        )

    if "vision" in data:
        v = data["vision"] or {}
        cfg.vision = VisionCfg(
            model=str(v.get("model", cfg.vision.model)),
            max_tokens=int(v.get("max_tokens", cfg.vision.max_tokens)),
            temperature=float(v.get("temperature", cfg.vision.temperature)),
            timeout_seconds=float(v.get("timeout_seconds", cfg.vision.timeout_seconds)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
        )

    if "citations" in data:
        c = data["citations"] or {}
        cfg.citations = CitationsCfg(
            max_sources=int(c.get("max_sources", cfg.citations.max_sources)),
            favicon_template=str(c.get("favicon_template", cfg.citations.favicon_template)),
        )

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: CitelineConfig) -> CitelineConfig:
    """Apply CITELINE_* environment variable overrides."""
    if model := os.environ.get("CITELINE_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("CITELINE_VISION_MODEL"):
        cfg.vision.model = model
    if model := os.environ.get("CITELINE_EMBEDDING_MODEL"):
        cfg.index.embedding_model = model
    if level := os.environ.get("CITELINE_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CitelineConfig:
    """Load and return a merged *CitelineConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *citeline.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            budget is not positive.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.citeline/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# citeline global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "index:\n"
            "  embedding_model: openai/text-embedding-3-small\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o\n"
            "\n"
            "vision:\n"
            "  model: openai/gpt-4o\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target


def render_project_config(cfg: CitelineConfig | None = None) -> str:
    """Return a commented citeline.yaml body reflecting *cfg* (defaults if None)."""
    cfg = cfg or CitelineConfig()
    return (
        "# citeline project configuration\n"
        "index:\n"
        f"  db_path: {cfg.index.db_path}\n"
        f"  embedding_model: {cfg.index.embedding_model}\n"
        f"  dimensions: {cfg.index.dimensions}\n"
        "\n"
        "retrieval:\n"
        f"  max_results: {cfg.retrieval.max_results}\n"
        f"  max_excerpt_chars: {cfg.retrieval.max_excerpt_chars}\n"
        f"  timeout_seconds: {cfg.retrieval.timeout_seconds}\n"
        "\n"
        "vision:\n"
        f"  model: {cfg.vision.model}\n"
        "\n"
        "generation:\n"
        f"  model: {cfg.generation.model}\n"
        "\n"
        "citations:\n"
        f"  max_sources: {cfg.citations.max_sources}\n"
    )
