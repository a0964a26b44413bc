"""taskhub package."""
