"""Middleware and monitoring integrations."""
