"""contentops - coordination of asynchronous external operations.

Tracks completion of backend jobs through a change feed and drives
concurrent, progress-reporting uploads against a storage proxy.
"""

__version__ = "0.1.0"
