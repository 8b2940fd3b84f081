"""Test configuration.

Ensure the project root is on sys.path so tests can import `scaffold.*`,
`contracts.*` and friends when executed from different working directories.
"""

import os
import sys


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
