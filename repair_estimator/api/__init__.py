"""HTTP API for the Repair Price Estimator."""
