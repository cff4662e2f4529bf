"""Long-lived daemon: recency log, tab directory and rpc responder."""
