"""Hotel offer ingestion and cheapest-offer search."""

__version__ = "0.1.0"
