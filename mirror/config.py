"""
mirror/config.py
JSON config with defaults. Persists to mirror_config.json in the project
root. Values here feed the progress tracker, the gaming heuristic, the
incident sink and the model adapter.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from mirror.detectors.gaming_detector import GamingThresholds
from mirror.models.record import SubmissionWindow
from mirror.progress.tracker import ProgressSettings, to_local_naive

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "mirror_config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "min_exchanges_for_completion": 10,
    "total_weeks": 15,
    "midterm_required_weeks": [2, 3, 4, 5, 6, 7, 8],
    "final_required_weeks": [2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15],
    "submission_windows": {
        "midterm": {
            "start": "2026-03-17T00:00:00",
            "end": "2026-03-23T23:59:59",
            "label": "Week 9 (March 17-23, 2026)",
        },
        "final": {
            "start": "2026-05-11T00:00:00",
            "end": "2026-05-16T23:59:59",
            "label": "Finals Week (May 11-16, 2026)",
        },
    },
    "gaming": {},
    "week_table_path": None,
    "incident_db_path": "mirror_incidents.db",
    "model": "llama3.1:8b",
    "ollama_host": "http://localhost:11434",
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from mirror_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to mirror_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def progress_settings(config: Dict[str, Any]) -> ProgressSettings:
    """
    Build tracker settings from a config dict. Window bounds with an
    offset are converted to naive local time.
    Raises ValueError on unparseable window dates.
    """
    defaults = ProgressSettings()
    windows = dict(defaults.windows)
    for kind, raw in (config.get("submission_windows") or {}).items():
        try:
            windows[kind] = SubmissionWindow(
                start=to_local_naive(datetime.fromisoformat(raw["start"])),
                end=to_local_naive(datetime.fromisoformat(raw["end"])),
                label=raw.get("label", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid submission window for {kind!r}: {e}") from e

    return ProgressSettings(
        min_exchanges=int(config.get("min_exchanges_for_completion", defaults.min_exchanges)),
        total_weeks=int(config.get("total_weeks", defaults.total_weeks)),
        midterm_required_weeks=tuple(config.get("midterm_required_weeks", defaults.midterm_required_weeks)),
        final_required_weeks=tuple(config.get("final_required_weeks", defaults.final_required_weeks)),
        windows=windows,
    )


def gaming_thresholds(config: Dict[str, Any]) -> GamingThresholds:
    """Overrides from config['gaming']; unknown keys are ignored with a warning."""
    overrides = dict(config.get("gaming") or {})
    known = set(GamingThresholds.__dataclass_fields__)
    unknown = set(overrides) - known
    if unknown:
        logger.warning(f"Ignoring unknown gaming thresholds: {sorted(unknown)}")
    return GamingThresholds(**{k: v for k, v in overrides.items() if k in known})


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load config, writing the defaults on first run so instructors have a
    file to edit. Returns merged config.
    """
    path = _config_path(project_root)
    config = load_config(project_root)
    if not path.exists():
        try:
            save_config(config, project_root)
            logger.info(f"Wrote default config: {path}")
        except OSError as e:
            logger.warning(f"Could not write default config {path}: {e}")
    return config
