"""videogate: an abuse-resistant access gate in front of a static video catalog."""

__version__ = "0.1.0"
