"""QuickCrop: position images in a fixed-ratio frame and export the crops."""

__version__ = "1.0.0"
