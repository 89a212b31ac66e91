"""
Boundary modules for external collaborators.

- provider: Cloud network API clients
- state: State snapshot storage backends
"""
