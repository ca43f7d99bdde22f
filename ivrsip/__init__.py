"""SIP interactive voice response application: call answering, DTMF menus and call transfer."""

__version__ = "0.1.0"