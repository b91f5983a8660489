"""Karpenter configuration wizard and cost optimizer."""

__version__ = "0.1.0"
