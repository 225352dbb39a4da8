"""State/sync layer.

This package owns the single in-memory snapshot of URL-backed state and the
rules for when it is written to, or re-read from, the location provider.
"""
