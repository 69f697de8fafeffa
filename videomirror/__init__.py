"""Mirror of a remote video catalog and its view counts, with a read API."""

__version__ = "1.0.0"
