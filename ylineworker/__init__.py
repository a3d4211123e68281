"""Worker side of the YLine distributed task scheduling system: machine and usage reporting, a WebSocket link to the server, and a terminal window."""

__version__ = "0.0.1"