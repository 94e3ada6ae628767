"""
Blueprint Engine Blueprint Module

Region segmentation, contour vectorization and the end-to-end pipeline.
"""
