"""Call signaling core: wire messages, candidate cache, SDP rewrite and the call state machine.

The peer-connection engine and the media engine are collaborators; this
package only speaks to them through ``signaling.engine.PeerEngine`` and the
``CallHandoff`` passed to the media handoff.
"""
