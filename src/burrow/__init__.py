"""burrow - interactive disk usage explorer."""

__version__ = "0.1.0"
