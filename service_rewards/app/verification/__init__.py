"""
Callback verification package.

- canonical: rebuilds the exact signed byte string from the raw query.
- signature: URL-safe signature decoding and ECDSA/SHA-256 checks.
- handler: orchestrates key lookup, canonicalization and verification,
  resolving every callback to an accept/reject/indeterminate outcome.
"""
