"""Version information for livestats."""

__version__ = "0.1.0"
__author__ = "livestats contributors"
__email__ = "livestats@example.com"
__license__ = "MIT"
