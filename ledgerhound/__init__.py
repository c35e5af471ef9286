"""Import bank CSV exports and detect recurring payments."""

__version__ = "0.1.0"
