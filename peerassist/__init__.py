"""PeerAssist - peer task marketplace backend."""

__version__ = "0.1.0"
