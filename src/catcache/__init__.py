"""
catcache - read-through/write-through cache for HTTP status-code images.
"""

__version__ = "0.1.0"
