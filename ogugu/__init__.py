"""
Ogugu

An RSS aggregator backend: registered feeds are polled by a reconciliation job
that imports new items as posts.
"""

__version__ = "0.1.0"
__author__ = "Ogugu Team"
__description__ = "RSS aggregator with a feed-refresh reconciliation job"
__license__ = "MIT"

# Version info tuple
VERSION_INFO = tuple(map(int, __version__.split('.')))
