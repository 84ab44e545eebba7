"""mediaforge: credit-metered AI media generation service."""
