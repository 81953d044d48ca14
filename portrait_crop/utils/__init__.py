"""Utility helpers for the portrait crop engine."""
