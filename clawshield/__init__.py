"""ClawShield: risk assessment and runtime policy guard for agent skills."""

__version__ = "0.4.0"
