"""JSON API over the booking service."""
