from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Dict

import yaml

DEFAULT_CONFIG: Dict[str, object] = {
    "db_path": "ledgerhound.db",
    "bank_loaders": {
        "danish": "ledgerhound.loaders.danish.DanishCsvLoader",
    },
    "import": {
        "loader": "danish",
        "atomic": False,
    },
    "detection": {
        "min_confidence": 0.6,
    },
    "categories": {
        "rollup_depth": 1,
    },
}

DB_PATH_ENV = "LEDGERHOUND_DB"


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Merge missing default keys into the current config recursively."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged:
            merged[key] = copy.deepcopy(value)
        elif isinstance(value, dict) and isinstance(merged[key], dict):
            merged[key] = _merge_defaults(merged[key], value)
    return merged


def load_config(path: str | Path | None = None) -> Dict[str, object]:
    """Load a YAML config file over the defaults.

    A missing file yields the defaults. ``LEDGERHOUND_DB`` in the environment
    overrides ``db_path``.
    """
    data: Dict[str, object] = {}
    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    config = _merge_defaults(data, DEFAULT_CONFIG)
    env_db = os.environ.get(DB_PATH_ENV)
    if env_db:
        config["db_path"] = env_db
    return config
