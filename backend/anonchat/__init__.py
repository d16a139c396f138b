"""Anonymous random-chat backend: presence, partner matching and message relay."""
