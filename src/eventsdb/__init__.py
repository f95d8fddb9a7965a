"""eventsdb - occurrence and price data access on async SQLAlchemy."""

__version__ = "0.1.0"
