"""
API route modules.

Each module covers one surface of the relay: the signaling socket and its
HTTP helpers, the controller lock endpoints, ICE server lookup and the
service info routes.
"""
