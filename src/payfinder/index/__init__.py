"""In-memory index, cache, searcher and SQLite store."""
