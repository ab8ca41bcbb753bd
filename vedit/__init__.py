"""vedit: timeline editing and FFmpeg render compilation core."""

__version__ = "0.1.0"
