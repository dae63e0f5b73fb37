"""Reputation (RWS) engine."""
