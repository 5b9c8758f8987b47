"""MediSales realtime backend: chat, presence and notification fan-out."""
