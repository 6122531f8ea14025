"""EcoLearn video watch progress service."""

__version__ = "0.1.0"
