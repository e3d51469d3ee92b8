"""Background services for the Nascraft companion app: discovery, directory watching, application log."""

__version__ = "1.0.0"
