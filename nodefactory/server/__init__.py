"""
HTTP and websocket surface of the node factory.
"""
