"""Questline test suite."""
