"""taskhub API package."""
