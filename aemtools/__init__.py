"""Conversion of glTF models into the AEM binary model format, with scene-graph and bone helpers."""

__version__ = "0.1.0"
__all__ = ["__version__"]