from .socket_sink import PeerWatcher, SocketOutputSink, UnixSocketServer

# Public adapter exports make wiring simpler.
__all__ = ["PeerWatcher", "SocketOutputSink", "UnixSocketServer"]
