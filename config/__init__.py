"""Configuration loading for the HDS consent engine."""
