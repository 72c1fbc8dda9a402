"""
Focus mode.

Components:
- session.py: focus session state machine (countdown, urgency, advancement)
- ticker.py: the per-second countdown resource owned by a session
"""
