"""
Repository-level pytest configuration.

Keeps the repository root importable so service tests can reach the
``mocks`` package alongside ``shared`` and ``service_rewards``.
"""
