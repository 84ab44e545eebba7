"""Business services for credits, credentials, providers and generation jobs."""
