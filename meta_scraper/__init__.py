"""Batch meta-tag extraction service backed by headless Chromium."""

__version__ = "0.1.0"
