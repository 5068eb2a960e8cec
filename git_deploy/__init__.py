"""Webhook-triggered git deployment agent."""

__version__ = "0.1.0"
