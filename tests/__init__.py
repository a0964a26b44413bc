"""Tests for taskhub."""
