"""Quiz challenge evaluation backend."""
