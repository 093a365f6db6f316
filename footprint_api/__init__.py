"""API HTTP del servicio de huella de carbono."""
