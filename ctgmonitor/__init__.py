"""CTG sensor collection service: WebSocket intake, SQLite storage, ML relay and frontend broadcast."""

__version__ = "0.1.0"