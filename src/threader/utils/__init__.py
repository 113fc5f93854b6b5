"""Utility modules for Threader."""
