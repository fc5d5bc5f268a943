"""Storyblok API access shared by the sync engines and the CLI."""

from .async_utils import run_sync, run_sync_limited
from .client import StoryblokClient
from .fetcher import StoryblokFetcher

__all__ = [
    "StoryblokClient",
    "StoryblokFetcher",
    "run_sync",
    "run_sync_limited",
]
