"""corpusview: windowed browsing and range selection over a remote file corpus."""

__version__ = "0.1.0"
