"""Cross-context state cache and synchronization for the ForgetfulMe extension."""

__version__ = "0.1.0"
