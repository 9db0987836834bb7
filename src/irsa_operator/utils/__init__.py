"""Utility functions for the IRSA Operator."""
