"""Admin module — leave catalogue, special actions, bulk adjustments, policy runs."""
