"""Build-failure classification and remediation dispatch."""

__version__ = "0.1.0"
