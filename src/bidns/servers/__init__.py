"""Inbound DNS listeners and the wire-level resolution pipeline."""
