"""LearnHub realtime API: Socket.IO signaling relay and mentor chat endpoints."""
