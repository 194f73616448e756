"""Air-gap friendly Kubernetes release deployment engine."""

from airgap_deployer.__version__ import __version__

__all__ = ["__version__"]
