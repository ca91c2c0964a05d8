"""
BG Removal Node: paired color/depth acquisition, pixel-format normalization
and multi-image composition for a live background removal view.
"""

__version__ = "0.1.0"
