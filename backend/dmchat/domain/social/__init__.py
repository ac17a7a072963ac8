"""Social domain: friendships and friend requests."""
