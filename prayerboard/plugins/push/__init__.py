"""Web Push: subscription registry, delivery and the minute dispatcher."""
