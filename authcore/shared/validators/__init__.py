"""Shared validators package for the application.

Reusable validation functions used by request schemas across features.

Available validators:
- password.py: Password strength policy
"""
