"""
Raptor Core
============
Modbus-TCP to MQTT bridge for the Raptor chain + wheel drive set:
one main VFD running the SoftPLC (chain/paddle motor) and two child
VFDs driving the mechanically linked inner and outer wheels.

Target Hardware: Revolution Pi or industrial Linux SBC
Drive Interface: Modbus TCP, one unit per drive
"""

__version__ = "1.0.0"
