"""Trade-behaviour bot detector.

Classifies traders as bot-like or human-like from the precision of their
trade amounts, the regularity of their trade timing and how far their
execution prices sit from a live price feed.
"""

__version__ = "0.1.0"
