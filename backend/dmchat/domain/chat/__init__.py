"""Chat domain: direct chats, message delivery and history."""
