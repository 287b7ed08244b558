# =======================================================================================
# keytrack/__init__.py - Package Initialization
# =======================================================================================
"""
KeyTrack - Campus Key Management

Tracks who holds each physical key, hands keys over through short-lived QR
codes and pushes every change to connected clients in real time.
"""

__version__ = "1.0.0"
__author__ = "KeyTrack Team"
