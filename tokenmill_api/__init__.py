"""HTTP shell for the Token Mill orchestrator."""

__version__ = "1.0.0"
