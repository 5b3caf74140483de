# rollcall/config_loader.py
from __future__ import annotations
"""
Unified configuration loader for RollCall.

Single source of truth:
    config/config.yaml      (override with ROLLCALL_CONFIG or --config)

Design notes
------------
- If the file is missing or broken, we raise a friendly RuntimeError that
  prints absolute paths for quick fixes.
- Unknown keys are fine; we pass the full dict through untouched.
- Helpers return {} or sensible defaults when sections are absent.
- Paths are absolute (resolved against the repo root) unless already absolute.

Public API
----------
- CONFIG: dict                              # eager-loaded contents of the config file
- load_config(path: str|Path|None = None)   # explicit reload (mainly for tests/tools)
- get_db_path() -> pathlib.Path
- get_persistence_cfg() -> dict
- get_scanner_cfg() -> dict
- get_camera_cfg() -> dict
- get_audit_cfg() -> dict
- get_feedback_cfg() -> dict
- get_operator() -> dict
- get_log_level(default: str = "INFO") -> str
- get_server_bind() -> tuple[str, int]
"""

import os
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

# ---------- Files & roots ----------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR   = PROJECT_ROOT / "config"
DEFAULT_CFG  = CONFIG_DIR / "config.yaml"
ENV_VAR      = "ROLLCALL_CONFIG"


# ---------- I/O helpers ----------
def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping from `path`. Human-friendly errors, strict root type."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise RuntimeError(
            f"Missing configuration file: {path}\n"
            f"Expected a single-file config with an 'app:' section.\n"
            f"Repo root: {PROJECT_ROOT}"
        )
    except OSError as ex:
        raise RuntimeError(f"Failed to read {path}: {type(ex).__name__}: {ex}")

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as ex:
        raise RuntimeError(f"Failed to parse YAML {path}: {type(ex).__name__}: {ex}")

    if not isinstance(data, dict):
        raise RuntimeError(f"Root of {path} must be a mapping/object, not {type(data).__name__}")
    return data


def _resolve_path(p: str | os.PathLike[str]) -> Path:
    """Return absolute path; resolve relative to repo root."""
    pth = Path(p)
    return pth if pth.is_absolute() else (PROJECT_ROOT / pth).resolve()


def _default_path() -> Path:
    env = os.getenv(ENV_VAR, "").strip()
    return _resolve_path(env) if env else DEFAULT_CFG


# ---------- Loader ----------
def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """
    Load a single YAML file (default: config/config.yaml), validate required shape,
    and return the raw dict (unmodified).
    """
    cfg_path = _resolve_path(path) if path else _default_path()
    cfg = _load_yaml(cfg_path)

    # Minimal structural contract for engine startup:
    try:
        sqlite_path = cfg["app"]["engine"]["persistence"]["sqlite_path"]
        if not isinstance(sqlite_path, (str, os.PathLike)) or not str(sqlite_path).strip():
            raise KeyError("app.engine.persistence.sqlite_path must be a non-empty string")
    except (KeyError, TypeError) as ke:
        raise RuntimeError(
            "CONFIG missing required key: app.engine.persistence.sqlite_path\n"
            "Your config must contain a single top-level 'app:' mapping with an "
            "'engine.persistence.sqlite_path' entry. See config/config.yaml template."
        ) from ke

    return cfg


# Eagerly load once for the app (tools may run without a config file)
CONFIG: Dict[str, Any] = load_config() if _default_path().exists() else {}


def use_config(cfg: Dict[str, Any]) -> None:
    """Swap the module-level CONFIG so every accessor reads the same dict."""
    global CONFIG
    CONFIG = cfg


# ---------- Accessors ----------
def _engine() -> Dict[str, Any]:
    return (CONFIG.get("app", {}) or {}).get("engine", {}) or {}


def get_persistence_cfg() -> Dict[str, Any]:
    """Return app.engine.persistence or {}."""
    return _engine().get("persistence", {}) or {}


def get_db_path() -> Path:
    """Return absolute filesystem path to the SQLite database."""
    sqlite_path = get_persistence_cfg().get("sqlite_path")
    if not sqlite_path:
        # Falls back to the repo default when running without a config file.
        return _resolve_path("db/rollcall.sqlite")
    if str(sqlite_path) == ":memory:":
        return Path(":memory:")
    return _resolve_path(sqlite_path)


def get_scanner_cfg() -> Dict[str, Any]:
    """Return scanner configuration block (source/cooldown/camera/replay) or {}."""
    return CONFIG.get("scanner", {}) or {}


def get_camera_cfg() -> Dict[str, Any]:
    """Return scanner.camera or {}."""
    return get_scanner_cfg().get("camera", {}) or {}


def get_audit_cfg() -> Dict[str, Any]:
    """Return audit sink configuration or {}."""
    return CONFIG.get("audit", {}) or {}


def get_feedback_cfg() -> Dict[str, Any]:
    """Return feedback.osc_out or {}."""
    return (CONFIG.get("feedback", {}) or {}).get("osc_out", {}) or {}


def get_operator() -> Dict[str, Any]:
    """Return the default operator identity used by the headless scanner."""
    op = CONFIG.get("operator", {}) or {}
    return {
        "id": str(op.get("id") or "unknown"),
        "label": str(op.get("label") or "Unknown"),
        "role": op.get("role"),
    }


def get_log_level(default: str = "INFO") -> str:
    """Return log level as 'INFO'/'DEBUG', etc."""
    lvl = (CONFIG.get("log", {}) or {}).get("level", default)
    return str(lvl).upper()


def get_server_bind() -> Tuple[str, int]:
    """Return (host, port) for launching the API server from code."""
    server = _engine().get("server", {}) or {}
    host = server.get("host")
    port = server.get("port")
    if isinstance(host, str) and isinstance(port, int):
        return host, port
    return "127.0.0.1", 8000
# ---------- End of config_loader.py ----------
