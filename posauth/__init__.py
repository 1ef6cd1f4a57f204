"""posauth - restaurant back-office authentication service."""
