"""cloudsweep - dependency-ordered cleanup of GCP and Azure deployments."""

__version__ = "0.3.0"
