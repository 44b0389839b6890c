"""buildgate: before/after build comparison and release gating."""

__version__ = "0.4.0"
