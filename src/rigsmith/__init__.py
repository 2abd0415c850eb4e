"""rigsmith - project analysis and infrastructure-as-code generation."""

__version__ = "0.4.0"
