"""
Rewards Service package.

This package exposes the FastAPI application that verifies AdMob
server-side verification (SSV) reward callbacks:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.keys: Key store that fetches and caches the network's public keys.
- app.verification: Canonical message rebuilding, signature checks and
  the callback handler that ties them together.

Design notes:
- Module import must not perform network calls. Key fetches happen on
  demand in the request path, or in the optional startup warmup.
- Use the shared/ utilities for logging, metrics and errors.
- The only process state is the in-memory key cache owned by the
  KeyStore instance; nothing is persisted.
"""
