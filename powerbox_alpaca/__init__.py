"""
ASCOM Alpaca Driver for multi-port power distribution boxes.

Talks to the appliance over its line-oriented serial protocol, derives the
box's controls and sensors from the board signature it advertises, and keeps
that model in sync with the live device.
"""

__version__ = "1.0.0"
__author__ = "PowerBox Alpaca contributors"
__email__ = "noreply@example.com"
