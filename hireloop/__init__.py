"""Client-side session and real-time layer for the HireLoop freelance marketplace."""

__version__ = "0.1.0"
