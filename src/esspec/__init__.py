"""esspec - YouTube OAuth credential and token lifecycle tooling."""

__version__ = "0.1.0"
