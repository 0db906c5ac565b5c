"""Panoptisana: Asana sync and identity-resolution engine for a menu-bar client."""

__version__ = "0.1.0"
