"""
Test suite for Mockup Studio.

This package contains unit tests, integration tests, and test utilities
for validating the framing and wall-mockup compositing pipeline.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
