"""bgpreader: read, filter and print BGP records from pluggable data sources."""

__version__ = "1.0.0"
