"""Config – environment-driven engine settings."""
