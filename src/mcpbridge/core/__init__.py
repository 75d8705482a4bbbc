"""Core building blocks — connection config, settings and the typed schema layer."""
