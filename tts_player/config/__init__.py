"""Configuration and provider profiles."""
