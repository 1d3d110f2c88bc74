"""
REST and WebSocket API for code-migrator.
"""
