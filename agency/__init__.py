"""Content ticket workflow service."""
