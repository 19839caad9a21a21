"""gitscout - documentation and code search for local git repositories."""

__version__ = "0.1.0"
