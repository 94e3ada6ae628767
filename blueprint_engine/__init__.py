"""
Blueprint Engine

Turns raster photos into paint-by-number blueprints: a perceptual palette,
flat-color regions with simplified outlines and matching DMC threads.
"""

__version__ = "1.0.0"
