"""Sample project used by the deadcode tests."""
