"""Programmatic import interface."""
