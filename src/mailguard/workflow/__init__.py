"""Account pass driver."""
