"""bbcli - a command-line client for the Bitbucket REST API."""

# Version is set during build
__version__ = "0.4.0"
