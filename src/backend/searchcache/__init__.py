"""
Search query caching and pagination engine.

Server side: cache-aside search coordinator with single-flight deduplication.
Client side: debounced query coordinator with page accumulation.
"""

__version__ = "1.0.0"
