"""Domain services: travel sheets, scans, reconciliation, risk and broadcasting."""
