"""gridrepo store connection handling."""
