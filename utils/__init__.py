"""Shared helpers for scheduling, access control, logging and configuration."""
