"""Command line utility for the Nais platform: kubeconfig, Aiven, debug containers and device checks."""

__version__ = "0.1.0"