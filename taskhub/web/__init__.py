"""WEB API for taskhub."""
