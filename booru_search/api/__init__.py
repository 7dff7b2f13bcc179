"""Web API for booru_search."""
