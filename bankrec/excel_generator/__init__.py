"""Excel review workbooks."""
