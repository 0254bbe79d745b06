"""NutriPilot WhatsApp feed-formula bot."""

__version__ = "0.8.0"
