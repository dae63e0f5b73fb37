"""E-TTN co-signing workflow and mock EDS signer."""
