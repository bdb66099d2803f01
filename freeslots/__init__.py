"""
freeslots - list mutually free meeting slots across calendars.
"""

__version__ = "0.1.0"
