"""Payment relay: Stripe subscriptions mirrored into Firestore."""
