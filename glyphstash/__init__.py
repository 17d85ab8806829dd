"""Glyph atlas packing, text layout and image caching for texture-based text rendering."""

__version__ = "0.1.0"
__all__ = ["atlas", "blur", "fonts", "image", "stash", "utf8"]