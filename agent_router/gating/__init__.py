"""Routing engines and their configuration."""
