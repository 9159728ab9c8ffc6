"""Health Auto Export webhook -> Airtable bridge."""

__version__ = "1.0.0"
