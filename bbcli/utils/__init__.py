"""Small helpers shared across bbcli modules."""
