"""Utility modules for VoxTrack."""
