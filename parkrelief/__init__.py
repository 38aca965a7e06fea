"""ParkRelief: massage session timer with a shared pain event log."""

__version__ = "0.1.0"
