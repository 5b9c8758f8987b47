"""Users as seen by the realtime layer: identity, role and presence fields."""
