"""Authentication and sessions.

Learn: Two ways to prove who you are, one user model:
1. Local → username/password → bcrypt check (credentials.py)
2. Google → OAuth authorization code → subject id → find-or-create (oauth.py)

Both end the same way: SessionManager.serialize() stores the user id
server-side and hands the browser an opaque signed cookie (sessions.py).
Protected routes resolve that cookie back to a User (dependencies.py).
"""
