"""Split settings: base, development, production and test."""
