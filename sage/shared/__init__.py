"""Shared models, utilities and data access for Sage services."""
