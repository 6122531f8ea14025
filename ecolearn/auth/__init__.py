"""Bearer token identity extraction."""
