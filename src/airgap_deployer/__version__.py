"""Version information for airgap_deployer."""

__version__ = "0.4.0"
