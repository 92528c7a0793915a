"""HTTP server exposing the exporter metrics."""
