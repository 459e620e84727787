"""Reconcile team mail-recipient rosters and flag duplicate registrations."""

__version__ = "0.1.0"
