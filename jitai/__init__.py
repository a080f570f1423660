"""JITAI decision core: adaptive content, timing, burden and rate limiting."""

__version__ = "0.1.0"
