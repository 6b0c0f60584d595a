"""HTTP clients and webhook verification for external chat platforms."""
