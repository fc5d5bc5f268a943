"""Incremental synchronisation of Storyblok stories and datasources."""

__version__ = "0.4.0"
