"""Notification Dispatch Service."""
