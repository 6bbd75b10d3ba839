"""printfix — printer subsystem remediation engine"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("printfix")
except PackageNotFoundError:
    __version__ = "dev"

__author__ = "printfix"
