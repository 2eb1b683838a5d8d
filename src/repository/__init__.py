"""Remote repository listing and content fetching."""
