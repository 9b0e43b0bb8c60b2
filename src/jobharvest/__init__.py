"""jobharvest - harvest LinkedIn job postings into SQLite through a real browser."""

__version__ = "0.1.0"
