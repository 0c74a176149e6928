"""Searchable field encryption and search-index sync for the rental shop back office."""

__version__ = "0.3.0"
