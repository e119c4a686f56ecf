"""HTTP API for vpsdeploy."""
