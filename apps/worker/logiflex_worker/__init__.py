"""LogiFlex background worker."""
