"""Shared logging helpers for StaffSync components."""
