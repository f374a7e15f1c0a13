"""
HeartID — heart-rate biometric matching and lockout engine.

A raw heart-rate window is turned into a feature fingerprint, compared with
the user's enrolled baseline, and accepted or rejected under a configurable
security level.  Repeated failures escalate through a persisted, timed
lockout schedule.
"""

__version__ = "0.1.0"
__author__ = "heartid"
