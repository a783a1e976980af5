"""Secret handling: decrypt-at-rest and workspace key storage."""
