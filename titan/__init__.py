# =============================================================================
# TITAN Messaging Core - Main Package
# =============================================================================
"""
TITAN Messaging Core

Real-time workspace messaging: channels, optimistic messages, reactions,
change-feed reconciliation and system messages for business actions.

Version is loaded from the installed distribution metadata.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("titan-messaging")
except PackageNotFoundError:
    # Running from a source checkout without an install
    __version__ = "0.0.0"

__all__ = ["__version__"]
