"""Cargo, bid and transaction lifecycle."""
