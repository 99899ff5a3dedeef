"""
MedRide realtime backend
Presence, chat delivery and ride-booking relay over WebSockets
"""

__version__ = "1.0.0"
