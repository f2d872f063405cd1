"""Database models and persistence."""
