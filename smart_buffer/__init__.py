"""Smart Buffer: semantic message buffering for chat automation."""

__version__ = '1.0.0'
