"""Core infrastructure: configuration, logging, timezone and HTTP client helpers."""
