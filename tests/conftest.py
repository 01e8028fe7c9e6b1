"""Pytest configuration ensuring project root is importable.

Adds repository root to sys.path explicitly to avoid interpreter/path quirks.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_config_env():  # noqa: D401
    """Ensure global config/env side effects do not leak between tests.

    - Clear cached config between tests
    - Restore MODFLOW_CONFIG_DIR and drop MODFLOW__* overrides set by a test
    """
    from modflow.config import clear_config_cache  # local import

    prev_dir = os.environ.get("MODFLOW_CONFIG_DIR")
    prev_overrides = {
        k: v for k, v in os.environ.items() if k.startswith("MODFLOW__")
    }
    clear_config_cache()
    try:
        yield
    finally:
        clear_config_cache()
        if prev_dir is None:
            os.environ.pop("MODFLOW_CONFIG_DIR", None)
        else:
            os.environ["MODFLOW_CONFIG_DIR"] = prev_dir
        for k in [k for k in os.environ if k.startswith("MODFLOW__")]:
            if k not in prev_overrides:
                os.environ.pop(k, None)
        os.environ.update(prev_overrides)
