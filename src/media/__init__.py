"""Media side of a call once signaling is done.

``media.peer`` adapts aiortc to the negotiator's engine surface, while
``media.relay`` moves the media file over the plain RTP path the rewritten
descriptions advertise.
"""
