"""Services for environment setup and worker lifecycle control."""
