"""Utility helpers for tbd."""
