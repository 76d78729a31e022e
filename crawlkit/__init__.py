"""
crawlkit - page acquisition and web search over interchangeable backends.
"""

__version__ = "0.1.0"
