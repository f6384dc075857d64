"""Swing-trading decision core for Indian equities."""
