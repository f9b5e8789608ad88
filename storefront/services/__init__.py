"""Business services for the catalog."""
