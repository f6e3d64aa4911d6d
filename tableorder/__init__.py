"""Table ordering platform: QR check-in, orders, kitchen and admin over a shared document store."""

__version__ = "1.0.0"
