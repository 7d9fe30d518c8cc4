"""Configuration loading for Consent Guard."""
