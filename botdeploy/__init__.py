"""Message routing between external chat platforms and deployed bots."""

from .__version__ import __version__

__all__ = ["__version__"]
