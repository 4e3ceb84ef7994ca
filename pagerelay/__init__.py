"""
pagerelay: content-fetching relay backed by a shared headless browser.
"""

__version__ = "0.1.0"
