"""Invite-only access management for published TradingView scripts."""

__version__ = "0.1.0"
