"""Business services: pricing, orders, state machine, check-in and sync."""
