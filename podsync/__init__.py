"""Podcast feed sync: fetch feeds, download due episodes, tag them."""

__version__ = "0.1.0"
