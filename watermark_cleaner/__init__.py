"""
PDF Watermark Cleaner

Removes recurring header, footer and center watermarks from PDF documents.
"""

__version__ = "0.1.0"
