"""Shared helpers for LMSLocal."""
