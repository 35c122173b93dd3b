"""Order workflow services: confirmation, share links, line items and benchmarks."""
