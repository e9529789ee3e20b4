"""restartinfo -- pod restart alerts with diagnostics for Kubernetes."""

__version__ = "0.1.0"
