"""HTTP API for the CMMN compiler."""
