"""
Session cleanup utilities.

- stale_sessions: force-settle ACTIVE sessions nobody ended
"""
