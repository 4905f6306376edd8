"""HTTP surface for the UI layer, plus the serverless handler."""
