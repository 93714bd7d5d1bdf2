"""
Notes Engine - organization and synchronization core for a personal notes app.
This package groups notes into pinned and time-based buckets, reconciles
administrator pins with per-user pin overrides, batches rapid edits into
debounced store updates, and drives keyboard search and navigation over the
grouped list.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notes-engine")
except PackageNotFoundError:
    __version__ = "0.3.0"
