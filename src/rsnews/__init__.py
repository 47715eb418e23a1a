"""RS News badge service."""
