"""FX trading application: broker clients, sessions and entry point."""
