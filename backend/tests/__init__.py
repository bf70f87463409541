"""
Test suite for the song resolver backend.

Tests mirror the source layout: services/ for the play-flow components,
top-level modules for the HTTP surface and configuration.
"""

import sys
import os

# Make backend modules (config, services, routers, main) importable
_backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _backend_dir not in sys.path:
    sys.path.insert(0, _backend_dir)
