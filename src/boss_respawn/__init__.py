"""Boss Respawn Tracker - tracks boss deaths reported in chat and announces respawns."""

__version__ = "1.0.0"
