"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .free_slot_finder import CalendarClientProtocol, FreeSlotFinderService

__all__ = ["CalendarClientProtocol", "FreeSlotFinderService"]
