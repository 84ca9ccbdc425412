"""Secretboard — share a secret anonymously.

A small web app: local and Google sign-in, server-side sessions,
and one anonymous secret per user shown on a shared board.
"""

__version__ = "0.1.0"
