"""Admission webhook routes."""
