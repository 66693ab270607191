"""Communication layer for a laboratory analyzer: Modbus RTU, serial printing, TCP forwarding, 4G uplink and a single-instance guard."""

__version__ = "1.0.0"