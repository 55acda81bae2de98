"""Domain services that implement semmark's indexing and search flows."""
