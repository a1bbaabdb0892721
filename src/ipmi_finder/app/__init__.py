"""Scan coordination and machine power control."""
