"""
Detecting the operator's own version.

The version is determined only once at startup when the code is loaded.
"""
from typing import Optional

version: Optional[str] = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        version = importlib.metadata.version('trustee-operator')
    except importlib.metadata.PackageNotFoundError:
        pass  # running from a source tree, not installed.
