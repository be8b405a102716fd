"""Relays between the telephony media stream and the realtime speech session."""
