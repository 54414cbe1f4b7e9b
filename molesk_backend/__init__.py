"""Backend utilities for the molesk markdown server.

This package keeps FastAPI route handlers thin:
- path safety + escaping helpers
- front matter parsing and the markdown rendering pipeline
- folder tree and RSS feed builders over the content root
- cache ownership + change-driven invalidation

Security note:
Every user-supplied path is checked against the content root before any file
I/O happens. Raw HTML in markdown sources is never passed through.
"""
