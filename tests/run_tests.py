#!/usr/bin/env python3
"""Run the unit tests: ``python tests/run_tests.py [pattern]``."""
import unittest
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

# Add project root to path so `event_curation` and `tests.fakes` import
sys.path.insert(0, ROOT)

if __name__ == '__main__':
    pattern = sys.argv[1] if len(sys.argv) > 1 else 'test_*.py'

    test_suite = unittest.defaultTestLoader.discover(
        start_dir=os.path.dirname(os.path.abspath(__file__)),
        pattern=pattern,
        top_level_dir=ROOT,
    )

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(test_suite)

    sys.exit(not result.wasSuccessful())
