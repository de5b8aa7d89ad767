"""gridrepo Engine — errors, configuration, structured logging."""
