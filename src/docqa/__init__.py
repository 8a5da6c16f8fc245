"""docqa: question answering over uploaded documents."""
