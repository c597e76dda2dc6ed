"""
ugclive render service: turns stored generation requests into published short videos.
"""

__version__ = "1.0.0"
