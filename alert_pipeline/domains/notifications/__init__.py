"""Notifications domain package (per-recipient push and email delivery)."""
