"""Key cache, token verification and multicast dispatch."""
