#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Recurring occurrences (tasks and meetings) materialised on demand."""

from importlib.metadata import PackageNotFoundError, version  # pragma: no cover
from pathlib import Path

from omegaconf import OmegaConf

try:
    __version__ = version("recurring-agenda")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"
finally:
    del version, PackageNotFoundError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
"""Checkout directory, relative paths in the hydra configs are resolved
against it via `${root:...}`."""

if not OmegaConf.has_resolver("root"):
    OmegaConf.register_new_resolver("root", lambda path: str(PROJECT_ROOT / path))
