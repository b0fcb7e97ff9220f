"""Core configuration, errors and lifecycle helpers."""
