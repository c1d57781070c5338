"""Core models for archeflow."""
