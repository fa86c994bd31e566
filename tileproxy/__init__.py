"""Reproject web map tiles from the NYC state-plane GeoWebCache."""

__version__ = "0.1.0"
