"""
Blueprint Engine Colors Module

CIELAB conversion, seeded k-means quantization and DMC thread matching.
"""

__version__ = "1.0.0"
