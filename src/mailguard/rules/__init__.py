"""Rule evaluation and actions."""
