"""gridrepo shared utilities."""
