"""Server routes."""
