class SplitIOError(OSError):
    """The file, its stream or its format header could not be read.

    Fatal for the split being read.
    """


class SeekError(SplitIOError):
    """No block boundary exists at or after the requested offset."""
