"""Run every curation pass once: ``python -m event_curation``."""

import sys

from .workflows.event_pipeline import main

if __name__ == "__main__":
    sys.exit(main())
