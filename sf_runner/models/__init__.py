"""Configuration and value types for the seed runner."""
