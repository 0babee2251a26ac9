"""Worker-wide identifiers."""

SERVICE_NAME = "relay-worker"
