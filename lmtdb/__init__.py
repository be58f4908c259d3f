"""Admin tools for the per-filesystem databases of the Lustre Monitoring Tool."""

__version__ = "0.1.0"
