"""Boundary schemas for external API payloads."""
