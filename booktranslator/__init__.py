"""
Resumable EPUB translation pipeline.
"""

__version__ = "1.0.0"
