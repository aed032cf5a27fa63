"""Default configuration files shipped with :mod:`irkeys`."""
