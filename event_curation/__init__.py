"""Top-level package for the event-curation project.

This package exposes the public run() helper so callers can do
`python -m event_curation` or `from event_curation import run; run()`.
"""

from importlib import metadata as _metadata

try:
    __version__: str = _metadata.version("event-curation")
except _metadata.PackageNotFoundError:  # pragma: no cover - running from source
    __version__ = "0.0.0"

from .workflows.event_pipeline import run  # convenience re-export

__all__ = ["run", "__version__"]
