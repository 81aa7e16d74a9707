"""ANPL registration and payment reconciliation core."""
