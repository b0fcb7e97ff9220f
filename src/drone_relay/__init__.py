"""
Drone Relay Service - live location relay for the drone delivery demo.

Receives drone location pings and simulation/order events, keeps the last
known value per entity, fans updates out to WebSocket/SSE subscribers and
forwards location changes to an upstream collaborator on a best-effort basis.
"""

__version__ = "0.1.0"
