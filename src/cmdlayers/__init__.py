"""cmdlayers — layered command parameters and structured row output."""

__version__ = "0.3.0"
