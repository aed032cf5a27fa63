"""Transport, persistence and configuration around :mod:`irkeys_core`.

The engine itself lives in :mod:`irkeys_core`; this package connects it to
IR controllers over UDP, stores learned patterns on disk and builds the
handler chain from YAML.
"""

from irkeys._version import __version__

__all__ = ["__version__"]
