"""AI provider clients, one module per chat-completion backend."""
