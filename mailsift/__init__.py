"""mailsift - criteria-driven email analysis with link following."""

__version__ = "0.1.0"
