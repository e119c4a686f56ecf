"""vpsdeploy - remote VPS deployment console."""

__version__ = "0.1.0"
