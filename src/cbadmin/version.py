from typing import Final

# For hatchling to easily detect the version
__version__ = "1.0.0"

# Typed version for outside use
VERSION: Final[str] = __version__
