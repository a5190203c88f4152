"""CSV parsing and bulk loading."""
