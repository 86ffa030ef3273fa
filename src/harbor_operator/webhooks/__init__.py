"""Admission webhooks: server configuration validation and pod image rewriting."""
