"""Test package initialization.

Adds the project root and ``src`` to ``sys.path`` so tests can import
``tests.*`` helpers and ``carre_vert`` regardless of the working directory
chosen by pytest or whether the package is installed.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, ROOT / "src"):
	if str(path) not in sys.path:
		sys.path.insert(0, str(path))
