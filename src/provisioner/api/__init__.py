"""REST API for the provisioner (FastAPI)."""
