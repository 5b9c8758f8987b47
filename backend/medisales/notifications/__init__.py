"""HTTP triggers for the notification hub."""
