"""State/store layer.

This package owns how journey mutations are admitted, broadcast to
observers, and mirrored into durable storage for crash recovery.
"""
