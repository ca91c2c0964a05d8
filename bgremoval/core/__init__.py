"""
Core of the background removal node.

Contains the frame mailbox, the pixel decoder, the layout composer, the
event bus, typed messages, protocol definitions and the two pipeline stages.
"""
