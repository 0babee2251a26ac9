"""API-wide identifiers."""

SERVICE_NAME = "relay-api"
