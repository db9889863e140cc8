"""CRO results workbench: simulation results aggregation and replay."""

__version__ = "0.3.0"
