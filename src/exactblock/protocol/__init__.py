"""Message channel between the rule store and in-page consumers."""
