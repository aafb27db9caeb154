# Sensor simulator: merges file-backed sources into one time-ordered socket stream.
__version__ = "0.1.0"
