"""Minecraft mod collection manager: CSV database, provider lookups, downloads."""

APP_NAME = "Mod Manager"
__version__ = "0.4.0"
