"""Catan-style board game sandbox: board generation, rules engine and automated players."""

__version__ = "0.1.0"
