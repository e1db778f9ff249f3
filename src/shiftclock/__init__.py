"""shiftclock - time-tracking engine for team timesheets."""

__version__ = "0.1.0"
