"""HTTP and websocket surface of the floor engine."""
