"""Parley realtime core."""
