"""Build, tag and push Docker images with registry credential resolution."""
