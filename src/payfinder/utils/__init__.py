"""Text and file helpers."""
