"""Email conversation engine: turns inbound emails into stateful, AI-assisted conversation threads."""

__version__ = "0.1.0"
