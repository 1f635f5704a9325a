"""Configuration: settings sources, section models, logging setup."""
