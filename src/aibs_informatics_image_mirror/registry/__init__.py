"""Registry access: OCI distribution client, models and credentials."""
