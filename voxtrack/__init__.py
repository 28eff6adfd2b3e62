"""
VoxTrack

Read-aloud with word highlighting synchronized to streamed neural speech.
"""

__version__ = "1.0.0"
