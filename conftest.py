# Ensure tests import prom_bridge from this checkout even when it is not installed.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
